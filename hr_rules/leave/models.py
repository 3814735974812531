"""Leave ORM models: LeavePolicy, LeavePolicyAssignment, LeaveBalance,
LeaveLedgerEntry, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_rules.common.constants import (
    LeaveStatus,
    LedgerEntryType,
    ProrationRule,
    ResetFrequency,
)
from hr_rules.database import Base


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
_JSON = sa.JSON().with_variant(JSONB, "postgresql")


def _enum(enum_cls, name: str) -> sa.Enum:
    """Portable enum column storing the enum *values*."""
    return sa.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class LeavePolicy(Base):
    __tablename__ = "leave_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    # Reference value shown to HR; accrual is capped by annual_maximum only
    yearly_quota: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), default=Decimal("12")
    )
    monthly_accrual_enabled: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    monthly_accrual_value: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), default=Decimal("1")
    )
    accrual_day_of_month: Mapped[Optional[int]] = mapped_column(sa.Integer)
    annual_maximum: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), default=Decimal("12")
    )
    # Empty or null means every department / designation is eligible
    eligibility_departments: Mapped[Optional[list[str]]] = mapped_column(_JSON)
    eligibility_designations: Mapped[Optional[list[str]]] = mapped_column(_JSON)
    carry_forward_allowed: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    carry_forward_max_per_quarter: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), default=Decimal("3")
    )
    carry_forward_reset_frequency: Mapped[ResetFrequency] = mapped_column(
        _enum(ResetFrequency, "reset_frequency"),
        default=ResetFrequency.quarterly,
    )
    join_date_proration_rule: Mapped[ProrationRule] = mapped_column(
        _enum(ProrationRule, "proration_rule"),
        default=ProrationRule.accrue_from_next_month,
    )
    auto_reset_enabled: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    reset_notice_days: Mapped[int] = mapped_column(sa.Integer, default=3)
    sandwich_rule_enabled: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    assignments: Mapped[list[LeavePolicyAssignment]] = relationship(
        back_populates="policy"
    )
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="policy")


class LeavePolicyAssignment(Base):
    __tablename__ = "leave_policy_assignments"
    __table_args__ = (
        sa.Index("ix_leave_assignment_policy", "leave_policy_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_policy_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_policies.id"), nullable=False
    )
    # Copied from the employee master so proration and eligibility need no lookup
    joining_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    department: Mapped[Optional[str]] = mapped_column(sa.String(100))
    designation: Mapped[Optional[str]] = mapped_column(sa.String(100))
    effective_from: Mapped[Optional[date]] = mapped_column(sa.Date)
    effective_to: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    policy: Mapped[LeavePolicy] = relationship(back_populates="assignments")


class LeaveBalance(Base):
    """Materialized projection of the ledger for one (employee, policy, year)."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_policy_id", "year", name="uq_leave_balance"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_policy_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_policies.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    balance: Mapped[Decimal] = mapped_column(sa.Numeric(8, 2), default=Decimal("0"))
    accrued_this_year: Mapped[Decimal] = mapped_column(
        sa.Numeric(8, 2), default=Decimal("0")
    )
    carry_forward_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(8, 2), default=Decimal("0")
    )
    pending_deduction: Mapped[Decimal] = mapped_column(
        sa.Numeric(8, 2), default=Decimal("0")
    )
    last_accrued_at: Mapped[Optional[date]] = mapped_column(sa.Date)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    policy: Mapped[LeavePolicy] = relationship(back_populates="balances")


class LeaveLedgerEntry(Base):
    """Append-only record of every balance-affecting event."""

    __tablename__ = "leave_ledger_entries"
    __table_args__ = (
        # NULL periods never collide, so ad-hoc entries are unconstrained
        sa.UniqueConstraint(
            "employee_id", "leave_policy_id", "entry_type", "period",
            name="uq_ledger_entry_period",
        ),
        sa.Index(
            "ix_ledger_emp_policy_date", "employee_id", "leave_policy_id", "entry_date"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_policy_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_policies.id"), nullable=False
    )
    # Balance row the entry belongs to
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    entry_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(sa.Numeric(8, 2), nullable=False)
    entry_type: Mapped[LedgerEntryType] = mapped_column(
        _enum(LedgerEntryType, "ledger_entry_type"), nullable=False
    )
    period: Mapped[Optional[str]] = mapped_column(sa.String(10))
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_policy_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_policies.id"), nullable=False
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    estimated_days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), nullable=False)
    sandwich_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), default=Decimal("0")
    )
    days_counted: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 2))
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        _enum(LeaveStatus, "leave_status"), default=LeaveStatus.pending
    )
    submitted_on: Mapped[date] = mapped_column(sa.Date, nullable=False)
    approved_on: Mapped[Optional[date]] = mapped_column(sa.Date)
    rejected_on: Mapped[Optional[date]] = mapped_column(sa.Date)
    cancelled_on: Mapped[Optional[date]] = mapped_column(sa.Date)
    reviewer_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    policy: Mapped[LeavePolicy] = relationship()

    @property
    def charged_days(self) -> Decimal:
        """Days held against the balance: working days plus sandwiched days."""
        return self.estimated_days + (self.sandwich_days or Decimal("0"))
