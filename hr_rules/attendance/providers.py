"""Attendance-side collaborators: policy lookup and read-only record access.

The classification engine only sees the Protocols; the SQLAlchemy classes are
the default implementations wired in by callers.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional, Protocol

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_rules.attendance.models import (
    AttendancePolicy,
    AttendancePolicyAssignment,
    AttendanceRecord,
)
from hr_rules.attendance.schemas import AttendanceDay, AttendancePolicyConfig


class AttendancePolicyProvider(Protocol):
    async def get_active_attendance_policy(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        on_date: date,
    ) -> Optional[AttendancePolicyConfig]: ...


class AttendanceStore(Protocol):
    async def get_record(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        on_date: date,
    ) -> Optional[AttendanceDay]: ...


class SqlAttendancePolicyProvider:
    """Resolve the policy assigned to an employee for a given calendar day."""

    async def get_active_attendance_policy(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        on_date: date,
    ) -> Optional[AttendancePolicyConfig]:
        result = await db.execute(
            select(AttendancePolicy)
            .join(
                AttendancePolicyAssignment,
                AttendancePolicyAssignment.policy_id == AttendancePolicy.id,
            )
            .where(
                AttendancePolicyAssignment.employee_id == employee_id,
                or_(
                    AttendancePolicyAssignment.effective_from.is_(None),
                    AttendancePolicyAssignment.effective_from <= on_date,
                ),
                or_(
                    AttendancePolicyAssignment.effective_to.is_(None),
                    AttendancePolicyAssignment.effective_to >= on_date,
                ),
            )
            .order_by(AttendancePolicyAssignment.effective_from.desc().nulls_last())
            .limit(1)
        )
        policy = result.scalars().first()
        if policy is None:
            return None
        return AttendancePolicyConfig.model_validate(policy)


class SqlAttendanceStore:
    """Read-only access to attendance rows written by the check-in/out handlers."""

    async def get_record(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        on_date: date,
    ) -> Optional[AttendanceDay]:
        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date == on_date,
            )
            .options(selectinload(AttendanceRecord.breaks))
        )
        record = result.scalars().first()
        return AttendanceDay.from_record(record) if record else None
