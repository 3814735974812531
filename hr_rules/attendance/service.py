"""Attendance service layer — policy-driven status classification.

Business logic:
  - Late arrival against work start + late grace period
  - Worked-minutes calculation with optional break exclusion
  - Duration classification (absent / half day / present / early departure)
  - Precedence between the late flag and the duration result

Every comparison is anchored to the attendance record's own calendar date so
historical records are judged under the policy revision active on that day.
Nothing here reads the system clock.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hr_rules.attendance.providers import AttendancePolicyProvider, AttendanceStore
from hr_rules.attendance.schemas import (
    AttendanceDay,
    AttendanceEvaluation,
    AttendancePolicyConfig,
)
from hr_rules.common.constants import ONE_HOUR_MINUTES, AttendanceStatus

logger = logging.getLogger(__name__)

# Used only to measure worked time when no policy applies
_DEFAULT_POLICY = AttendancePolicyConfig()


def _minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, order-insensitive."""
    return int(abs((end - start).total_seconds()) // 60)


def _on_record_date(record: AttendanceDay, at: time, reference: datetime) -> datetime:
    """Policy time-of-day placed on the record's date, in the reference's timezone."""
    return datetime.combine(record.date, at, tzinfo=reference.tzinfo)


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Pure attendance classification plus an async lookup wrapper."""

    # ── Policy window ───────────────────────────────────────────────

    @staticmethod
    def is_policy_active(
        policy: Optional[AttendancePolicyConfig],
        on_date: date,
    ) -> bool:
        """True when ``on_date`` falls inside the policy's effective range.

        Missing bounds are unbounded.
        """
        if policy is None:
            return False
        if policy.effective_from is not None and on_date < policy.effective_from:
            return False
        if policy.effective_to is not None and on_date > policy.effective_to:
            return False
        return True

    # ── Late arrival ────────────────────────────────────────────────

    @staticmethod
    def is_late_arrival(policy: AttendancePolicyConfig, record: AttendanceDay) -> bool:
        """Check-in strictly after work start + grace is late; the boundary itself is on time."""
        if record.check_in is None:
            return False
        work_start = _on_record_date(record, policy.work_start_time, record.check_in)
        allowed = work_start + timedelta(minutes=policy.late_grace_period_minutes)
        return record.check_in > allowed

    # ── Worked time ─────────────────────────────────────────────────

    @staticmethod
    def calculate_worked_minutes(
        policy: AttendancePolicyConfig,
        record: AttendanceDay,
    ) -> int:
        if record.check_in is None or record.check_out is None:
            return 0

        elapsed = _minutes_between(record.check_in, record.check_out)
        if policy.include_break_in_worked_time:
            return elapsed

        # Only completed breaks count
        break_minutes = sum(
            _minutes_between(b.start, b.end)
            for b in record.breaks
            if b.start is not None and b.end is not None
        )
        return max(0, elapsed - break_minutes)

    @staticmethod
    def classify_by_duration(
        policy: AttendancePolicyConfig,
        worked_minutes: int,
        record: AttendanceDay,
    ) -> AttendanceStatus:
        """Classify a completed day by worked time, then by check-out time.

        - worked < half day                      → absent
        - half day ≤ worked < full day − 1h      → half_day
        - otherwise present, unless early tracking is on and check-out lands in
          [work_end − 1h, work_end − early grace)  → early_departure
        """
        one_hour_short = policy.full_day_minutes - ONE_HOUR_MINUTES

        if worked_minutes < policy.half_day_minutes:
            return AttendanceStatus.absent
        if worked_minutes < one_hour_short:
            return AttendanceStatus.half_day

        if policy.enable_early_tracking and record.check_out is not None:
            work_end = _on_record_date(record, policy.work_end_time, record.check_out)
            window_start = work_end - timedelta(minutes=ONE_HOUR_MINUTES)
            window_end = work_end - timedelta(minutes=policy.early_grace_period_minutes)
            if window_start <= record.check_out < window_end:
                return AttendanceStatus.early_departure

        return AttendanceStatus.present

    # ── Classification ──────────────────────────────────────────────

    @staticmethod
    def evaluate(
        policy: Optional[AttendancePolicyConfig],
        record: AttendanceDay,
        *,
        evaluated_on: Optional[date] = None,
    ) -> AttendanceEvaluation:
        """Derive status and worked minutes for one attendance day.

        Falls back to ``present`` when no policy covers ``record.date`` or the
        check-in is missing. A duration result of absent/half_day overrides a
        late flag; otherwise a late arrival stays ``late``.
        """
        evaluated_on = evaluated_on or record.date

        if not AttendanceService.is_policy_active(policy, record.date):
            return AttendanceEvaluation(
                status=AttendanceStatus.present,
                worked_minutes=AttendanceService.calculate_worked_minutes(
                    _DEFAULT_POLICY, record,
                ),
                evaluated_on=evaluated_on,
            )

        if record.check_in is None:
            return AttendanceEvaluation(
                status=AttendanceStatus.present,
                policy_applied=True,
                evaluated_on=evaluated_on,
            )

        status = AttendanceStatus.present
        is_late = False
        if policy.enable_late_tracking:
            is_late = AttendanceService.is_late_arrival(policy, record)
            if is_late:
                status = AttendanceStatus.late

        worked = 0
        if record.check_out is not None:
            worked = AttendanceService.calculate_worked_minutes(policy, record)
            duration_status = AttendanceService.classify_by_duration(
                policy, worked, record,
            )
            if duration_status in (AttendanceStatus.absent, AttendanceStatus.half_day):
                status = duration_status
            elif not is_late:
                status = duration_status

        return AttendanceEvaluation(
            status=status,
            worked_minutes=worked,
            is_late=is_late,
            policy_applied=True,
            evaluated_on=evaluated_on,
        )

    @staticmethod
    def classify(
        policy: Optional[AttendancePolicyConfig],
        record: AttendanceDay,
        evaluated_on: Optional[date] = None,
    ) -> AttendanceStatus:
        return AttendanceService.evaluate(
            policy, record, evaluated_on=evaluated_on,
        ).status

    # ── Formatting ──────────────────────────────────────────────────

    @staticmethod
    def work_duration_parts(total_minutes: int) -> tuple[int, int]:
        return divmod(max(0, total_minutes), 60)

    @staticmethod
    def format_work_duration(total_minutes: int) -> str:
        """Render minutes as ``"Xh Ym"``."""
        hours, minutes = AttendanceService.work_duration_parts(total_minutes)
        return f"{hours}h {minutes}m"

    # ── Lookup + classify ───────────────────────────────────────────

    @staticmethod
    async def evaluate_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        on_date: date,
        *,
        policy_provider: AttendancePolicyProvider,
        attendance_store: AttendanceStore,
    ) -> Optional[AttendanceEvaluation]:
        """Classify the stored attendance of ``employee_id`` on ``on_date``.

        Returns None when no attendance row exists (true absence is not recorded).
        """
        record = await attendance_store.get_record(db, employee_id, on_date)
        if record is None:
            return None

        policy = await policy_provider.get_active_attendance_policy(
            db, employee_id, on_date,
        )
        if policy is None:
            logger.debug(
                "No attendance policy for employee %s on %s, defaulting to present",
                employee_id, on_date,
            )

        return AttendanceService.evaluate(policy, record, evaluated_on=on_date)
