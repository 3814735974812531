"""Leave accrual and carry-forward batch engine.

Scheduler entry points:
  - run_monthly_accrual(run_date)
  - run_quarter_end_process(quarter_end_date)
  - send_pre_reset_notifications(notification_date)

Each (employee, policy) unit runs in its own transaction opened from the
session factory, so one employee's failure is recorded in the run report and
the batch carries on. Every balance change goes through LeaveBalanceService.
Re-running a batch for the same period is a no-op: units whose period entry
already exists in the ledger are skipped.
"""

from __future__ import annotations

import calendar
import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_rules.common.calendar import (
    format_period_month,
    format_period_quarter,
    quarter_bounds,
    quarter_end,
    quarter_of,
    year_bounds,
)
from hr_rules.common.constants import (
    ACCRUAL_ENTRY_TYPES,
    ENTITLEMENT_ENTRY_TYPES,
    PERIOD_CLOSE_ENTRY_TYPES,
    LedgerEntryType,
    ProrationRule,
    ResetFrequency,
)
from hr_rules.common.exceptions import AppException
from hr_rules.leave.providers import LeavePolicyProvider, SqlLeavePolicyProvider
from hr_rules.leave.schemas import (
    BatchFailure,
    BatchRunReport,
    LeaveAssignmentOut,
    LeavePolicyConfig,
)
from hr_rules.leave.service import LeaveBalanceService
from hr_rules.notifications.service import DatabaseNotificationSink, NotificationSink

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class LeaveAccrualService:
    """Batch operations invoked once per period boundary by the scheduler."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy_provider: Optional[LeavePolicyProvider] = None,
        notification_sink: Optional[NotificationSink] = None,
    ) -> None:
        self._session_factory = session_factory
        self._policies = policy_provider or SqlLeavePolicyProvider()
        self._notifications = notification_sink or DatabaseNotificationSink(session_factory)

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    async def _load_policies(self, **filters) -> list[LeavePolicyConfig]:
        async with self._session_factory() as db:
            return await self._policies.get_active_leave_policies(db, **filters)

    async def _load_assignments(
        self,
        leave_policy_id: uuid.UUID,
        on_date: Optional[date] = None,
    ) -> list[LeaveAssignmentOut]:
        async with self._session_factory() as db:
            return await self._policies.get_active_assignments(
                db, leave_policy_id, on_date,
            )

    async def _in_transaction(
        self, work: Callable[[AsyncSession], Awaitable[bool]],
    ) -> bool:
        async with self._session_factory() as db:
            async with db.begin():
                return await work(db)

    @staticmethod
    async def _isolated(
        report: BatchRunReport,
        policy: LeavePolicyConfig,
        employee_id: uuid.UUID,
        work: Awaitable[bool],
    ) -> None:
        """Run one unit; count it as processed/skipped or record its failure."""
        try:
            done = await work
        except AppException as exc:
            logger.warning(
                "%s failed for employee %s policy %s: %s",
                report.operation, employee_id, policy.code, exc.detail,
            )
            report.failures.append(BatchFailure(
                employee_id=employee_id,
                leave_policy_id=policy.id,
                error_type=exc.error_type,
                detail=exc.detail,
            ))
            return
        except SQLAlchemyError as exc:
            logger.warning(
                "%s failed for employee %s policy %s: %s",
                report.operation, employee_id, policy.code, exc,
            )
            report.failures.append(BatchFailure(
                employee_id=employee_id,
                leave_policy_id=policy.id,
                error_type="database-error",
                detail=str(exc),
            ))
            return

        if done:
            report.processed += 1
        else:
            report.skipped += 1

    # ─────────────────────────────────────────────────────────────────
    # Monthly accrual
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _accrues_on(policy: LeavePolicyConfig, run_date: date) -> bool:
        """Runs on the configured day (clamped to the month's last day), or any day if unset."""
        if policy.accrual_day_of_month is None:
            return True
        last_day = calendar.monthrange(run_date.year, run_date.month)[1]
        return min(policy.accrual_day_of_month, last_day) == run_date.day

    @staticmethod
    def _joined_this_month_or_later(assignment: LeaveAssignmentOut, run_date: date) -> bool:
        joined = assignment.joining_date
        if joined is None:
            return False
        return (joined.year, joined.month) >= (run_date.year, run_date.month)

    @staticmethod
    def _is_eligible(policy: LeavePolicyConfig, assignment: LeaveAssignmentOut) -> bool:
        """Empty eligibility lists place no restriction."""
        if (
            policy.eligibility_departments
            and assignment.department not in policy.eligibility_departments
        ):
            return False
        if (
            policy.eligibility_designations
            and assignment.designation not in policy.eligibility_designations
        ):
            return False
        return True

    async def _accrue_one(
        self,
        db: AsyncSession,
        policy: LeavePolicyConfig,
        assignment: LeaveAssignmentOut,
        run_date: date,
    ) -> bool:
        employee_id = assignment.employee_id

        if not self._is_eligible(policy, assignment):
            logger.info(
                "Skipping accrual for employee %s (%s): not eligible",
                employee_id, policy.code,
            )
            return False

        if (
            policy.join_date_proration_rule == ProrationRule.accrue_from_next_month
            and self._joined_this_month_or_later(assignment, run_date)
        ):
            logger.info(
                "Skipping accrual for employee %s (%s): joined %s, accrues from next month",
                employee_id, policy.code, assignment.joining_date,
            )
            return False

        period = format_period_month(run_date)
        if await LeaveBalanceService.has_entry(
            db, employee_id, policy.id, ACCRUAL_ENTRY_TYPES, period,
        ):
            logger.debug("Accrual for %s already posted for %s", period, employee_id)
            return False

        year_start, year_end = year_bounds(run_date.year)
        accrued = await LeaveBalanceService.sum_entries(
            db, employee_id, policy.id,
            entry_types=ACCRUAL_ENTRY_TYPES, start=year_start, end=year_end,
        )
        if accrued >= policy.annual_maximum:
            logger.info(
                "Employee %s reached annual maximum %s for %s",
                employee_id, policy.annual_maximum, policy.code,
            )
            return False

        amount = min(policy.monthly_accrual_value, policy.annual_maximum - accrued)
        if amount <= 0:
            return False

        await LeaveBalanceService.credit(
            db, employee_id, policy.id, amount,
            LedgerEntryType.monthly_accrual, run_date,
            notes=f"Monthly accrual for {period}",
            period=period,
        )
        return True

    async def run_monthly_accrual(self, run_date: date) -> BatchRunReport:
        """Credit this month's accrual to every eligible assignment."""
        report = BatchRunReport(operation="monthly_accrual", run_date=run_date)

        policies = await self._load_policies(monthly_accrual_enabled=True)
        for policy in policies:
            if not self._accrues_on(policy, run_date):
                continue

            assignments = await self._load_assignments(policy.id, run_date)
            before = report.processed
            for assignment in assignments:
                await self._isolated(
                    report, policy, assignment.employee_id,
                    self._in_transaction(functools.partial(
                        self._accrue_one,
                        policy=policy, assignment=assignment, run_date=run_date,
                    )),
                )
            logger.info(
                "Monthly accrual %s for %s: %d credited of %d assignments",
                format_period_month(run_date), policy.code,
                report.processed - before, len(assignments),
            )

        return report

    # ─────────────────────────────────────────────────────────────────
    # Quarter / year close
    # ─────────────────────────────────────────────────────────────────

    async def _close_period_one(
        self,
        db: AsyncSession,
        policy: LeavePolicyConfig,
        assignment: LeaveAssignmentOut,
        *,
        start: date,
        end: date,
        period: str,
        reset_type: LedgerEntryType,
    ) -> bool:
        """Move up to the cap of the period's unused entitlement into the next period.

        The carried days are debited from the closing period and credited again
        on the first day of the next one, so they are never counted twice and
        the next close caps them again. Anything above the cap is forfeited.
        """
        employee_id = assignment.employee_id

        if not self._is_eligible(policy, assignment):
            return False

        if await LeaveBalanceService.has_entry(
            db, employee_id, policy.id, PERIOD_CLOSE_ENTRY_TYPES, period,
        ):
            logger.debug("Period %s already closed for %s", period, employee_id)
            return False

        accrued = await LeaveBalanceService.sum_entries(
            db, employee_id, policy.id,
            entry_types=ENTITLEMENT_ENTRY_TYPES, start=start, end=end,
        )
        used = await self._policies.get_approved_days(
            db, employee_id, policy.id, start, end,
        )
        unused = max(_ZERO, accrued - used)
        if unused <= 0:
            return False

        carry = min(unused, policy.carry_forward_max_per_quarter)
        reset = unused - carry

        moved = _ZERO
        if carry > 0:
            moved = await LeaveBalanceService.forfeit(
                db, employee_id, policy.id, carry,
                LedgerEntryType.carry_forward_debit, end,
                period=period,
                year=end.year,
                notes=f"Carried out of {period}",
            )
        forfeited = _ZERO
        if reset > 0:
            forfeited = await LeaveBalanceService.forfeit(
                db, employee_id, policy.id, reset, reset_type, end,
                period=period,
                year=end.year,
                notes=f"Unused leave reset for {period}",
            )
        if moved > 0:
            # Closing December lands in next year's balance row
            await LeaveBalanceService.credit(
                db, employee_id, policy.id, moved,
                LedgerEntryType.carry_forward, end + timedelta(days=1),
                notes=f"Carry forward from {period}",
                period=period,
            )

        logger.debug(
            "Closed %s for employee %s (%s): accrued=%s used=%s carried=%s reset=%s",
            period, employee_id, policy.code, accrued, used, moved, forfeited,
        )
        return moved > 0 or forfeited > 0

    async def _close_period(
        self,
        report: BatchRunReport,
        policies: list[LeavePolicyConfig],
        *,
        start: date,
        end: date,
        period: str,
        reset_type: LedgerEntryType,
    ) -> None:
        for policy in policies:
            assignments = await self._load_assignments(policy.id)
            before = report.processed
            for assignment in assignments:
                await self._isolated(
                    report, policy, assignment.employee_id,
                    self._in_transaction(functools.partial(
                        self._close_period_one,
                        policy=policy, assignment=assignment,
                        start=start, end=end, period=period, reset_type=reset_type,
                    )),
                )
            logger.info(
                "Closed %s for %s: %d of %d assignments",
                period, policy.code, report.processed - before, len(assignments),
            )

    async def run_quarter_end_process(self, quarter_end_date: date) -> BatchRunReport:
        """Close the quarter containing ``quarter_end_date``.

        Quarterly policies close every quarter; annual policies close with Q4
        over the whole year.
        """
        report = BatchRunReport(operation="quarter_end_process", run_date=quarter_end_date)
        year, quarter = quarter_end_date.year, quarter_of(quarter_end_date)

        start, end = quarter_bounds(year, quarter)
        if quarter_end_date != end:
            logger.warning(
                "Quarter-end process run on %s, closing %s ending %s",
                quarter_end_date, format_period_quarter(quarter_end_date), end,
            )

        quarterly = await self._load_policies(
            carry_forward_allowed=True, reset_frequency=ResetFrequency.quarterly,
        )
        await self._close_period(
            report, quarterly,
            start=start, end=end,
            period=format_period_quarter(end),
            reset_type=LedgerEntryType.quarter_reset,
        )

        if quarter == 4:
            annual = await self._load_policies(
                carry_forward_allowed=True, reset_frequency=ResetFrequency.annual,
            )
            year_start, year_end = year_bounds(year)
            await self._close_period(
                report, annual,
                start=year_start, end=year_end,
                period=str(year),
                reset_type=LedgerEntryType.annual_reset,
            )

        if report.failures:
            logger.warning(
                "Quarter-end %s finished with %d failure(s)",
                format_period_quarter(end), report.failed,
            )
        return report

    # ─────────────────────────────────────────────────────────────────
    # Pre-reset notifications
    # ─────────────────────────────────────────────────────────────────

    async def _notify_one(
        self,
        policy: LeavePolicyConfig,
        assignment: LeaveAssignmentOut,
        notification_date: date,
        reset_date: date,
    ) -> bool:
        async with self._session_factory() as db:
            balance = await LeaveBalanceService.get_balance(
                db, assignment.employee_id, policy.id, notification_date.year,
            )
        if balance.balance <= 0:
            return False

        await self._notifications.notify(
            assignment.employee_id, policy, balance.balance, reset_date,
        )
        return True

    async def send_pre_reset_notifications(self, notification_date: date) -> BatchRunReport:
        """Notify employees with a positive balance ``reset_notice_days`` before the reset."""
        report = BatchRunReport(
            operation="pre_reset_notifications", run_date=notification_date,
        )
        reset_date = quarter_end(notification_date)

        policies = await self._load_policies(auto_reset_enabled=True)
        for policy in policies:
            if policy.reset_notice_days <= 0:
                continue
            if notification_date != reset_date - timedelta(days=policy.reset_notice_days):
                continue

            assignments = await self._load_assignments(policy.id, notification_date)
            before = report.processed
            for assignment in assignments:
                await self._isolated(
                    report, policy, assignment.employee_id,
                    self._notify_one(policy, assignment, notification_date, reset_date),
                )
            logger.info(
                "Pre-reset notices for %s (reset %s): %d sent",
                policy.code, reset_date, report.processed - before,
            )

        return report
