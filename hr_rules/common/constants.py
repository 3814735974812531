"""Enums and constants for the attendance and leave rule engine."""

from __future__ import annotations

import enum


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    late = "late"
    half_day = "half_day"
    absent = "absent"
    early_departure = "early_departure"


# ── Leave policy ────────────────────────────────────────────────────

class ProrationRule(str, enum.Enum):
    none = "NONE"
    accrue_from_next_month = "ACCRUE_FROM_NEXT_MONTH"


class ResetFrequency(str, enum.Enum):
    quarterly = "QUARTERLY"
    annual = "ANNUAL"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# ── Ledger ──────────────────────────────────────────────────────────

class LedgerEntryType(str, enum.Enum):
    monthly_accrual = "MONTHLY_ACCRUAL"
    carry_forward = "CARRY_FORWARD"
    quarter_reset = "QUARTER_RESET"
    annual_reset = "ANNUAL_RESET"
    leave_deduction = "LEAVE_DEDUCTION"
    leave_restore = "LEAVE_RESTORE"
    carry_forward_debit = "CARRY_FORWARD_DEBIT"
    maximum_adjustment = "MAXIMUM_ADJUSTMENT"
    manual_adjustment = "MANUAL_ADJUSTMENT"


# Credits that count toward accrued_this_year / annual_maximum
ACCRUAL_ENTRY_TYPES: frozenset[LedgerEntryType] = frozenset({
    LedgerEntryType.monthly_accrual,
})

# Entries that make up a period's entitlement when closing a quarter/year.
# Carried-in days are dated on the first day of the next period and count there.
ENTITLEMENT_ENTRY_TYPES: frozenset[LedgerEntryType] = frozenset({
    LedgerEntryType.monthly_accrual,
    LedgerEntryType.carry_forward,
    LedgerEntryType.maximum_adjustment,
    LedgerEntryType.manual_adjustment,
})

# Entries that mark a quarter or year as already closed
PERIOD_CLOSE_ENTRY_TYPES: frozenset[LedgerEntryType] = frozenset({
    LedgerEntryType.carry_forward,
    LedgerEntryType.carry_forward_debit,
    LedgerEntryType.quarter_reset,
    LedgerEntryType.annual_reset,
})


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    reminder = "reminder"
    alert = "alert"


# ── Calendar / time ─────────────────────────────────────────────────

WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})  # Saturday, Sunday
ONE_HOUR_MINUTES = 60
