"""Common module — shared utilities for the attendance and leave rule engine."""

from hr_rules.common.calendar import (
    is_holiday,
    is_non_working_day,
    is_quarter_end,
    is_weekend,
    iter_days,
    quarter_bounds,
    quarter_end,
)
from hr_rules.common.constants import (
    AttendanceStatus,
    LeaveStatus,
    LedgerEntryType,
    NotificationType,
    ProrationRule,
    ResetFrequency,
)
from hr_rules.common.exceptions import (
    AppException,
    ConflictError,
    InsufficientBalanceException,
    LedgerWriteException,
    NotFoundException,
    PolicyInactiveException,
    PolicyNotFoundException,
    ValidationException,
)
from hr_rules.common.log import configure_logging

__all__ = [
    # Calendar
    "is_holiday",
    "is_non_working_day",
    "is_quarter_end",
    "is_weekend",
    "iter_days",
    "quarter_bounds",
    "quarter_end",
    # Constants / Enums
    "AttendanceStatus",
    "LeaveStatus",
    "LedgerEntryType",
    "NotificationType",
    "ProrationRule",
    "ResetFrequency",
    # Exceptions
    "AppException",
    "ConflictError",
    "InsufficientBalanceException",
    "LedgerWriteException",
    "NotFoundException",
    "PolicyInactiveException",
    "PolicyNotFoundException",
    "ValidationException",
    # Logging
    "configure_logging",
]
