"""Shared test fixtures — async DB, session factory, seed helpers.

Reusable across all test modules (attendance, sandwich, ledger, accrual, workflow).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hr_rules.attendance.schemas import AttendanceDay, AttendancePolicyConfig, BreakInterval
from hr_rules.common.constants import ProrationRule, ResetFrequency
from hr_rules.database import Base

# Import ALL model modules so every table is registered on Base.metadata
import hr_rules.attendance.models  # noqa: F401
import hr_rules.leave.models  # noqa: F401
import hr_rules.notifications.models  # noqa: F401

from hr_rules.attendance.models import Holiday
from hr_rules.leave.models import LeavePolicy, LeavePolicyAssignment


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return TestSessionFactory


# ── Attendance factories (no DB) ────────────────────────────────────

def _make_attendance_policy(**overrides) -> AttendancePolicyConfig:
    """09:00–18:00, 10 min late grace, 15 min early grace, 270/510 thresholds."""
    data = dict(
        name="General Shift",
        work_start_time=time(9, 0),
        work_end_time=time(18, 0),
        late_grace_period_minutes=10,
        early_grace_period_minutes=15,
        enable_late_tracking=True,
        enable_early_tracking=True,
        include_break_in_worked_time=False,
        half_day_minutes=270,
        full_day_minutes=510,
    )
    data.update(overrides)
    return AttendancePolicyConfig(**data)


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def _make_day(
    day: date,
    check_in: Optional[tuple[int, int]] = None,
    check_out: Optional[tuple[int, int]] = None,
    breaks: tuple[tuple[Optional[tuple[int, int]], Optional[tuple[int, int]]], ...] = (),
) -> AttendanceDay:
    """Build an attendance day from (hour, minute) pairs on ``day``."""
    return AttendanceDay(
        employee_id=uuid.uuid4(),
        date=day,
        check_in=_at(day, *check_in) if check_in else None,
        check_out=_at(day, *check_out) if check_out else None,
        breaks=tuple(
            BreakInterval(
                start=_at(day, *start) if start else None,
                end=_at(day, *end) if end else None,
            )
            for start, end in breaks
        ),
    )


# ── Leave seed helpers ──────────────────────────────────────────────

def _make_leave_policy(
    *,
    code: str = "CL",
    name: str = "Casual Leave",
    **overrides,
) -> dict:
    data = dict(
        id=uuid.uuid4(),
        code=code,
        name=name,
        yearly_quota=Decimal("12"),
        monthly_accrual_enabled=True,
        monthly_accrual_value=Decimal("1"),
        accrual_day_of_month=None,
        annual_maximum=Decimal("12"),
        carry_forward_allowed=True,
        carry_forward_max_per_quarter=Decimal("3"),
        carry_forward_reset_frequency=ResetFrequency.quarterly,
        join_date_proration_rule=ProrationRule.none,
        auto_reset_enabled=False,
        reset_notice_days=0,
        sandwich_rule_enabled=False,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    data.update(overrides)
    return data


async def _seed_leave_policy(db: AsyncSession, **overrides) -> LeavePolicy:
    policy = LeavePolicy(**_make_leave_policy(**overrides))
    db.add(policy)
    await db.flush()
    return policy


async def _seed_assignment(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_policy_id: uuid.UUID,
    *,
    joining_date: Optional[date] = date(2024, 1, 15),
    department: Optional[str] = None,
    designation: Optional[str] = None,
    effective_from: Optional[date] = None,
    effective_to: Optional[date] = None,
    is_active: bool = True,
) -> LeavePolicyAssignment:
    assignment = LeavePolicyAssignment(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_policy_id=leave_policy_id,
        joining_date=joining_date,
        department=department,
        designation=designation,
        effective_from=effective_from,
        effective_to=effective_to,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(assignment)
    await db.flush()
    return assignment


async def _seed_holiday(db: AsyncSession, day: date, name: str = "Holiday") -> Holiday:
    holiday = Holiday(
        id=uuid.uuid4(),
        name=name,
        date=day,
        created_at=datetime.now(timezone.utc),
    )
    db.add(holiday)
    await db.flush()
    return holiday
