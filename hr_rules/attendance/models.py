"""Attendance ORM models: AttendancePolicy, AttendancePolicyAssignment,
AttendanceRecord, BreakRecord, Holiday."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_rules.database import Base


class AttendancePolicy(Base):
    __tablename__ = "attendance_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    work_start_time: Mapped[time] = mapped_column(
        sa.Time, nullable=False, default=time(9, 0)
    )
    work_end_time: Mapped[time] = mapped_column(
        sa.Time, nullable=False, default=time(18, 0)
    )
    late_grace_period_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)
    early_grace_period_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)
    enable_late_tracking: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    enable_early_tracking: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    include_break_in_worked_time: Mapped[bool] = mapped_column(
        sa.Boolean, default=False
    )
    half_day_minutes: Mapped[int] = mapped_column(sa.Integer, default=270)
    full_day_minutes: Mapped[int] = mapped_column(sa.Integer, default=510)
    effective_from: Mapped[Optional[date]] = mapped_column(sa.Date)
    effective_to: Mapped[Optional[date]] = mapped_column(sa.Date)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    assignments: Mapped[list[AttendancePolicyAssignment]] = relationship(
        back_populates="policy"
    )


class AttendancePolicyAssignment(Base):
    """Which attendance policy revision applies to an employee, and when."""

    __tablename__ = "attendance_policy_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    policy_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("attendance_policies.id"), nullable=False
    )
    effective_from: Mapped[Optional[date]] = mapped_column(sa.Date)
    effective_to: Mapped[Optional[date]] = mapped_column(sa.Date)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    policy: Mapped[AttendancePolicy] = relationship(back_populates="assignments")


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "date", name="uq_attendance_emp_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    check_in: Mapped[Optional[datetime]] = mapped_column(sa.DateTime)
    check_out: Mapped[Optional[datetime]] = mapped_column(sa.DateTime)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    breaks: Mapped[list[BreakRecord]] = relationship(
        back_populates="attendance_record",
        order_by="BreakRecord.break_start",
        cascade="all, delete-orphan",
    )


class BreakRecord(Base):
    __tablename__ = "break_records"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    attendance_record_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("attendance_records.id"), nullable=False
    )
    break_start: Mapped[Optional[datetime]] = mapped_column(sa.DateTime)
    break_end: Mapped[Optional[datetime]] = mapped_column(sa.DateTime)

    # Relationships
    attendance_record: Mapped[AttendanceRecord] = relationship(back_populates="breaks")


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (
        sa.UniqueConstraint("date", name="uq_holiday_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
