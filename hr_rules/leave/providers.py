"""Leave-side collaborators: policy/assignment lookup, approved usage, holidays.

The accrual engine depends only on the Protocols; the SQLAlchemy classes are
the default implementations.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_rules.attendance.models import Holiday
from hr_rules.common.calendar import year_bounds
from hr_rules.common.constants import LeaveStatus, ResetFrequency
from hr_rules.common.exceptions import PolicyNotFoundException
from hr_rules.leave.models import LeavePolicy, LeavePolicyAssignment, LeaveRequest
from hr_rules.leave.schemas import LeaveAssignmentOut, LeavePolicyConfig


# ── Protocols ───────────────────────────────────────────────────────

class LeavePolicyProvider(Protocol):
    async def get_active_leave_policies(
        self,
        db: AsyncSession,
        *,
        monthly_accrual_enabled: Optional[bool] = None,
        carry_forward_allowed: Optional[bool] = None,
        reset_frequency: Optional[ResetFrequency] = None,
        auto_reset_enabled: Optional[bool] = None,
    ) -> list[LeavePolicyConfig]: ...

    async def get_policy(
        self, db: AsyncSession, leave_policy_id: uuid.UUID,
    ) -> LeavePolicyConfig: ...

    async def get_active_assignments(
        self,
        db: AsyncSession,
        leave_policy_id: uuid.UUID,
        on_date: Optional[date] = None,
    ) -> list[LeaveAssignmentOut]: ...

    async def get_approved_days(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        start: date,
        end: date,
    ) -> Decimal: ...


class HolidayProvider(Protocol):
    async def get_holidays(self, db: AsyncSession, year: int) -> set[date]: ...

    async def get_holidays_between(
        self, db: AsyncSession, start: date, end: date,
    ) -> set[date]: ...


# ── SQLAlchemy implementations ──────────────────────────────────────

class SqlLeavePolicyProvider:
    """Policies, assignments and approved usage read from the leave tables."""

    async def get_active_leave_policies(
        self,
        db: AsyncSession,
        *,
        monthly_accrual_enabled: Optional[bool] = None,
        carry_forward_allowed: Optional[bool] = None,
        reset_frequency: Optional[ResetFrequency] = None,
        auto_reset_enabled: Optional[bool] = None,
    ) -> list[LeavePolicyConfig]:
        query = select(LeavePolicy).where(LeavePolicy.is_active.is_(True))
        if monthly_accrual_enabled is not None:
            query = query.where(
                LeavePolicy.monthly_accrual_enabled.is_(monthly_accrual_enabled)
            )
        if carry_forward_allowed is not None:
            query = query.where(
                LeavePolicy.carry_forward_allowed.is_(carry_forward_allowed)
            )
        if reset_frequency is not None:
            query = query.where(
                LeavePolicy.carry_forward_reset_frequency == reset_frequency
            )
        if auto_reset_enabled is not None:
            query = query.where(LeavePolicy.auto_reset_enabled.is_(auto_reset_enabled))

        result = await db.execute(query.order_by(LeavePolicy.code))
        return [LeavePolicyConfig.model_validate(p) for p in result.scalars().all()]

    async def get_policy(
        self, db: AsyncSession, leave_policy_id: uuid.UUID,
    ) -> LeavePolicyConfig:
        policy = await db.get(LeavePolicy, leave_policy_id)
        if policy is None:
            raise PolicyNotFoundException("LeavePolicy", leave_policy_id)
        return LeavePolicyConfig.model_validate(policy)

    async def get_active_assignments(
        self,
        db: AsyncSession,
        leave_policy_id: uuid.UUID,
        on_date: Optional[date] = None,
    ) -> list[LeaveAssignmentOut]:
        """Active assignments; with ``on_date`` only those whose window contains it."""
        query = select(LeavePolicyAssignment).where(
            LeavePolicyAssignment.leave_policy_id == leave_policy_id,
            LeavePolicyAssignment.is_active.is_(True),
        )
        if on_date is not None:
            query = query.where(
                or_(
                    LeavePolicyAssignment.effective_from.is_(None),
                    LeavePolicyAssignment.effective_from <= on_date,
                ),
                or_(
                    LeavePolicyAssignment.effective_to.is_(None),
                    LeavePolicyAssignment.effective_to >= on_date,
                ),
            )
        result = await db.execute(query.order_by(LeavePolicyAssignment.employee_id))
        return [LeaveAssignmentOut.model_validate(a) for a in result.scalars().all()]

    async def get_approved_days(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        start: date,
        end: date,
    ) -> Decimal:
        """Days counted on requests approved between ``start`` and ``end``."""
        result = await db.execute(
            select(func.coalesce(func.sum(LeaveRequest.days_counted), 0)).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_policy_id == leave_policy_id,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.approved_on >= start,
                LeaveRequest.approved_on <= end,
            )
        )
        return Decimal(str(result.scalar()))


class SqlHolidayProvider:
    async def get_holidays(self, db: AsyncSession, year: int) -> set[date]:
        start, end = year_bounds(year)
        return await self.get_holidays_between(db, start, end)

    async def get_holidays_between(
        self, db: AsyncSession, start: date, end: date,
    ) -> set[date]:
        if start > end:
            return set()
        result = await db.execute(
            select(Holiday.date).where(Holiday.date >= start, Holiday.date <= end)
        )
        return set(result.scalars().all())
