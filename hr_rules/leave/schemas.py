"""Leave Pydantic v2 schemas — policy configuration, balances, ledger, batch reports.

Naming conventions:
  - *Config   → immutable configuration resolved once at load time
  - *Out      → read models returned by services
  - *Report   → batch operation results
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hr_rules.common.constants import (
    LeaveStatus,
    LedgerEntryType,
    ProrationRule,
    ResetFrequency,
)


# ═════════════════════════════════════════════════════════════════════
# Policy
# ═════════════════════════════════════════════════════════════════════


class LeavePolicyConfig(BaseModel):
    """Fully-populated leave policy; nullable storage values get their defaults here."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    code: str
    name: str
    yearly_quota: Decimal = Decimal("12")
    monthly_accrual_enabled: bool = True
    monthly_accrual_value: Decimal = Field(default=Decimal("1"), ge=0)
    accrual_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    annual_maximum: Decimal = Field(default=Decimal("12"), ge=0)
    eligibility_departments: list[str] = Field(default_factory=list)
    eligibility_designations: list[str] = Field(default_factory=list)
    carry_forward_allowed: bool = True
    carry_forward_max_per_quarter: Decimal = Field(default=Decimal("0"), ge=0)
    carry_forward_reset_frequency: ResetFrequency = ResetFrequency.quarterly
    join_date_proration_rule: ProrationRule = ProrationRule.none
    auto_reset_enabled: bool = False
    reset_notice_days: int = Field(default=0, ge=0)
    sandwich_rule_enabled: bool = False
    is_active: bool = True

    @field_validator(
        "yearly_quota",
        "monthly_accrual_value",
        "annual_maximum",
        "carry_forward_max_per_quarter",
        mode="before",
    )
    @classmethod
    def _none_amount_is_zero(cls, v):
        return Decimal("0") if v is None else v

    @field_validator("join_date_proration_rule", mode="before")
    @classmethod
    def _none_rule(cls, v):
        return ProrationRule.none if v is None else v

    @field_validator("reset_notice_days", mode="before")
    @classmethod
    def _none_days(cls, v):
        return 0 if v is None else v

    @field_validator("eligibility_departments", "eligibility_designations", mode="before")
    @classmethod
    def _none_list(cls, v):
        return [] if v is None else v


class LeaveAssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_policy_id: uuid.UUID
    joining_date: Optional[date] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


# ═════════════════════════════════════════════════════════════════════
# Balance / ledger
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance projection for one (employee, policy, year)."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    leave_policy_id: uuid.UUID
    year: int
    balance: Decimal = Decimal("0")
    accrued_this_year: Decimal = Decimal("0")
    carry_forward_balance: Decimal = Decimal("0")
    pending_deduction: Decimal = Decimal("0")
    last_accrued_at: Optional[date] = None


class BalanceSummary(LeaveBalanceOut):
    """Balance joined with its policy, for display."""

    policy_code: str
    policy_name: str


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_policy_id: uuid.UUID
    year: int
    entry_date: date
    quantity: Decimal
    entry_type: LedgerEntryType
    period: Optional[str] = None
    reference_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None


class ReconciliationOut(BaseModel):
    """Stored balance vs. the sum of its ledger entries."""

    employee_id: uuid.UUID
    leave_policy_id: uuid.UUID
    year: int
    stored_balance: Decimal
    ledger_balance: Decimal
    entry_count: int

    @property
    def drift(self) -> Decimal:
        return self.stored_balance - self.ledger_balance

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0


# ═════════════════════════════════════════════════════════════════════
# Sandwich estimate
# ═════════════════════════════════════════════════════════════════════


class SandwichEstimate(BaseModel):
    original_from: date
    original_to: date
    extended_from: date
    extended_to: date
    total_days: int
    sandwich_days: int
    effective_days: int
    # A working boundary sits next to a weekend/holiday that was not pulled in
    adjacent_off_days: bool = False


# ═════════════════════════════════════════════════════════════════════
# Leave requests
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_policy_id: uuid.UUID
    from_date: date
    to_date: date
    estimated_days: Decimal
    sandwich_days: Decimal = Decimal("0")
    days_counted: Optional[Decimal] = None
    status: LeaveStatus
    reason: Optional[str] = None
    submitted_on: date
    approved_on: Optional[date] = None
    rejected_on: Optional[date] = None
    cancelled_on: Optional[date] = None
    reviewer_remarks: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Batch runs
# ═════════════════════════════════════════════════════════════════════


class BatchFailure(BaseModel):
    employee_id: uuid.UUID
    leave_policy_id: uuid.UUID
    error_type: str
    detail: str


class BatchRunReport(BaseModel):
    """Outcome of one scheduler-triggered batch operation."""

    operation: str
    run_date: date
    processed: int = 0
    skipped: int = 0
    failures: list[BatchFailure] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)
