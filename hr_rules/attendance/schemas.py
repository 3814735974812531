"""Attendance Pydantic v2 schemas — policy configuration, day snapshots, results.

Naming conventions:
  - *Config     → immutable, fully-populated configuration resolved at load time
  - AttendanceDay / BreakInterval → read-only view of one attendance record
  - AttendanceEvaluation → classification output
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hr_rules.common.constants import AttendanceStatus


# ═════════════════════════════════════════════════════════════════════
# Policy
# ═════════════════════════════════════════════════════════════════════


class AttendancePolicyConfig(BaseModel):
    """One attendance policy revision with every default resolved.

    Nullable grace periods coming from storage are coerced to 0 here, once,
    so the classification code never has to deal with missing values.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[uuid.UUID] = None
    name: str = "Default"
    work_start_time: time = time(9, 0)
    work_end_time: time = time(18, 0)
    late_grace_period_minutes: int = Field(default=0, ge=0)
    early_grace_period_minutes: int = Field(default=0, ge=0)
    enable_late_tracking: bool = True
    enable_early_tracking: bool = True
    include_break_in_worked_time: bool = False
    half_day_minutes: int = Field(default=270, ge=0)
    full_day_minutes: int = Field(default=510, gt=0)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    @field_validator(
        "late_grace_period_minutes",
        "early_grace_period_minutes",
        mode="before",
    )
    @classmethod
    def _none_grace_is_zero(cls, v):
        return 0 if v is None else v

    @model_validator(mode="after")
    def _check_thresholds(self) -> AttendancePolicyConfig:
        if self.half_day_minutes >= self.full_day_minutes:
            raise ValueError("half_day_minutes must be less than full_day_minutes")
        if (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_from > self.effective_to
        ):
            raise ValueError("effective_from must be on or before effective_to")
        return self


# ═════════════════════════════════════════════════════════════════════
# Attendance record snapshot
# ═════════════════════════════════════════════════════════════════════


class BreakInterval(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None


class AttendanceDay(BaseModel):
    """Read-only view of one employee's attendance on one calendar date."""

    model_config = ConfigDict(frozen=True)

    employee_id: Optional[uuid.UUID] = None
    date: date
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    breaks: tuple[BreakInterval, ...] = ()

    @classmethod
    def from_record(cls, record) -> AttendanceDay:
        """Build from an ``AttendanceRecord`` ORM row (breaks must be loaded)."""
        return cls(
            employee_id=record.employee_id,
            date=record.date,
            check_in=record.check_in,
            check_out=record.check_out,
            breaks=tuple(
                BreakInterval(start=b.break_start, end=b.break_end)
                for b in record.breaks
            ),
        )


# ═════════════════════════════════════════════════════════════════════
# Result
# ═════════════════════════════════════════════════════════════════════


class AttendanceEvaluation(BaseModel):
    """Classification result for one attendance day."""

    status: AttendanceStatus
    worked_minutes: int = 0
    is_late: bool = False
    policy_applied: bool = False
    evaluated_on: date
