"""Leave request lifecycle: submit (hold), approve, reject, cancel.

Balances are only touched through LeaveBalanceService; the days charged for a
request come from SandwichRuleService.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Container
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_rules.common.constants import LeaveStatus
from hr_rules.common.exceptions import (
    ConflictError,
    NotFoundException,
    PolicyInactiveException,
    PolicyNotFoundException,
    ValidationException,
)
from hr_rules.leave.models import LeavePolicy, LeaveRequest
from hr_rules.leave.sandwich import SandwichRuleService
from hr_rules.leave.schemas import LeavePolicyConfig, LeaveRequestOut
from hr_rules.leave.service import LeaveBalanceService

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


class LeaveRequestService:
    """Async leave request operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_policy(
        db: AsyncSession, leave_policy_id: uuid.UUID,
    ) -> LeavePolicyConfig:
        policy = await db.get(LeavePolicy, leave_policy_id)
        if policy is None:
            raise PolicyNotFoundException("LeavePolicy", leave_policy_id)
        if not policy.is_active:
            raise PolicyInactiveException("LeavePolicy", leave_policy_id)
        return LeavePolicyConfig.model_validate(policy)

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        leave_req = await db.get(LeaveRequest, request_id, with_for_update=True)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def _require_status(leave_req: LeaveRequest, *allowed: LeaveStatus) -> None:
        if leave_req.status not in allowed:
            raise ValidationException(
                {"status": [f"Leave request is already {leave_req.status.value}."]}
            )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        from_date: date,
        to_date: date,
        submitted_on: date,
        holidays: Container[date] = frozenset(),
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Create a pending request and hold its charged days against the balance.

        Raises ConflictError when the span overlaps another pending or approved
        request, InsufficientBalanceException when the balance is short.
        """
        policy = await LeaveRequestService._load_policy(db, leave_policy_id)

        estimated, sandwich = SandwichRuleService.charged_days(
            policy, from_date, to_date, holidays,
        )
        total = estimated + sandwich
        if total <= 0:
            raise ValidationException(
                {"date_range": ["The selected dates contain no working days."]}
            )

        overlap = await db.execute(
            select(LeaveRequest.id)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(_OPEN_STATUSES),
                LeaveRequest.from_date <= to_date,
                LeaveRequest.to_date >= from_date,
            )
            .limit(1)
        )
        if overlap.scalar() is not None:
            raise ConflictError("date_range", f"{from_date} to {to_date}")

        request_id = uuid.uuid4()
        await LeaveBalanceService.debit(
            db, employee_id, leave_policy_id, total,
            reference_id=request_id,
            on_date=submitted_on,
            year=from_date.year,
        )

        leave_req = LeaveRequest(
            id=request_id,
            employee_id=employee_id,
            leave_policy_id=leave_policy_id,
            from_date=from_date,
            to_date=to_date,
            estimated_days=estimated,
            sandwich_days=sandwich,
            reason=reason,
            status=LeaveStatus.pending,
            submitted_on=submitted_on,
        )
        db.add(leave_req)
        await db.flush()

        logger.info(
            "Leave request %s submitted by %s: %s to %s (%s + %s sandwich)",
            request_id, employee_id, from_date, to_date, estimated, sandwich,
        )
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Approve / reject / cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        approved_on: date,
        remarks: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Approve a pending request; the hold becomes a confirmed deduction."""
        leave_req = await LeaveRequestService._load_request(db, request_id)
        LeaveRequestService._require_status(leave_req, LeaveStatus.pending)

        days = leave_req.charged_days
        await LeaveBalanceService.confirm_deduction(
            db, leave_req.employee_id, leave_req.leave_policy_id, days,
            year=leave_req.from_date.year,
        )

        leave_req.status = LeaveStatus.approved
        leave_req.approved_on = approved_on
        leave_req.days_counted = days
        leave_req.reviewer_remarks = remarks
        await db.flush()

        logger.info("Leave request %s approved on %s (%s days)", request_id, approved_on, days)
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        rejected_on: date,
        reason: str,
    ) -> LeaveRequestOut:
        """Reject a pending request and give the held days back."""
        leave_req = await LeaveRequestService._load_request(db, request_id)
        LeaveRequestService._require_status(leave_req, LeaveStatus.pending)

        await LeaveBalanceService.restore(
            db, leave_req.employee_id, leave_req.leave_policy_id,
            leave_req.charged_days,
            reference_id=leave_req.id,
            on_date=rejected_on,
            year=leave_req.from_date.year,
            notes=reason,
        )

        leave_req.status = LeaveStatus.rejected
        leave_req.rejected_on = rejected_on
        leave_req.reviewer_remarks = reason
        await db.flush()

        logger.info("Leave request %s rejected on %s", request_id, rejected_on)
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        cancelled_on: date,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Cancel a pending or approved request. Restores the charged days."""
        leave_req = await LeaveRequestService._load_request(db, request_id)
        LeaveRequestService._require_status(
            leave_req, LeaveStatus.pending, LeaveStatus.approved,
        )

        was_pending = leave_req.status == LeaveStatus.pending
        await LeaveBalanceService.restore(
            db, leave_req.employee_id, leave_req.leave_policy_id,
            leave_req.charged_days,
            reference_id=leave_req.id,
            on_date=cancelled_on,
            year=leave_req.from_date.year,
            release_pending=was_pending,
            notes=reason,
        )

        leave_req.status = LeaveStatus.cancelled
        leave_req.cancelled_on = cancelled_on
        if reason:
            leave_req.reviewer_remarks = f"Cancelled by employee: {reason}"
        await db.flush()

        logger.info("Leave request %s cancelled on %s", request_id, cancelled_on)
        return LeaveRequestOut.model_validate(leave_req)
