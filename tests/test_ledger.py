"""Leave balance ledger tests — credits, holds, confirmations, restores,
forfeits, adjustments and reconciliation against the ledger.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_rules.common.constants import LedgerEntryType
from hr_rules.common.exceptions import (
    InsufficientBalanceException,
    LedgerWriteException,
    NotFoundException,
    ValidationException,
)
from hr_rules.leave.models import LeaveBalance
from hr_rules.leave.service import LeaveBalanceService
from tests.conftest import _seed_leave_policy

ON = date(2025, 3, 3)


async def _credit(db, emp_id, policy_id, amount, **kwargs):
    kwargs.setdefault("entry_type", LedgerEntryType.monthly_accrual)
    kwargs.setdefault("on_date", ON)
    return await LeaveBalanceService.credit(
        db, emp_id, policy_id, Decimal(amount), **kwargs,
    )


# ═════════════════════════════════════════════════════════════════════
# 1. Reads
# ═════════════════════════════════════════════════════════════════════


class TestGetBalance:

    async def test_missing_balance_is_zero(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        bal = await LeaveBalanceService.get_balance(db, uuid.uuid4(), policy.id, 2025)
        assert bal.balance == 0
        assert bal.pending_deduction == 0
        assert bal.last_accrued_at is None

    async def test_balances_for_employee_include_policy_name(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        cl = await _seed_leave_policy(db, code="CL", name="Casual Leave")
        sl = await _seed_leave_policy(db, code="SL", name="Sick Leave")
        await _credit(db, emp_id, cl.id, "2")
        await _credit(db, emp_id, sl.id, "1")

        summaries = await LeaveBalanceService.get_balances_for_employee(db, emp_id, 2025)
        assert [(s.policy_code, s.policy_name, s.balance) for s in summaries] == [
            ("CL", "Casual Leave", Decimal("2")),
            ("SL", "Sick Leave", Decimal("1")),
        ]


# ═════════════════════════════════════════════════════════════════════
# 2. Credit
# ═════════════════════════════════════════════════════════════════════


class TestCredit:

    async def test_accrual_creates_row_and_entry(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)

        bal = await _credit(db, emp_id, policy.id, "1.5", period="2025-03")
        assert bal.balance == Decimal("1.5")
        assert bal.accrued_this_year == Decimal("1.5")
        assert bal.last_accrued_at == ON

        entries = await LeaveBalanceService.get_ledger(db, emp_id, policy.id)
        assert len(entries) == 1
        assert entries[0].quantity == Decimal("1.5")
        assert entries[0].entry_type == LedgerEntryType.monthly_accrual
        assert entries[0].period == "2025-03"

    async def test_carry_forward_is_not_accrual(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)

        bal = await _credit(
            db, emp_id, policy.id, "3", entry_type=LedgerEntryType.carry_forward,
        )
        assert bal.balance == Decimal("3")
        assert bal.carry_forward_balance == Decimal("3")
        assert bal.accrued_this_year == 0
        assert bal.last_accrued_at is None

    async def test_year_override_targets_next_years_row(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)

        await _credit(
            db, emp_id, policy.id, "2",
            entry_type=LedgerEntryType.carry_forward,
            on_date=date(2025, 12, 31), year=2026,
        )
        assert (await LeaveBalanceService.get_balance(db, emp_id, policy.id, 2025)).balance == 0
        assert (await LeaveBalanceService.get_balance(db, emp_id, policy.id, 2026)).balance == 2

    @pytest.mark.parametrize("amount", ["0", "-1"])
    async def test_non_positive_amount_rejected(self, db: AsyncSession, amount):
        policy = await _seed_leave_policy(db)
        with pytest.raises(ValidationException):
            await _credit(db, uuid.uuid4(), policy.id, amount)

    async def test_deduction_type_is_not_a_credit(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        with pytest.raises(ValidationException):
            await _credit(
                db, uuid.uuid4(), policy.id, "1", entry_type=LedgerEntryType.leave_deduction,
            )

    async def test_duplicate_period_entry_is_a_ledger_write_failure(self, session_factory):
        emp_id = uuid.uuid4()
        async with session_factory() as session:
            policy = await _seed_leave_policy(session)
            policy_id = policy.id
            await _credit(session, emp_id, policy_id, "1", period="2025-03")
            with pytest.raises(LedgerWriteException) as exc_info:
                await _credit(session, emp_id, policy_id, "1", period="2025-03")
            await session.rollback()

        assert exc_info.value.error_type == "ledger-write-failure"
        assert str(emp_id) in exc_info.value.detail
        assert str(policy_id) in exc_info.value.detail


# ═════════════════════════════════════════════════════════════════════
# 3. Debit / confirm / restore
# ═════════════════════════════════════════════════════════════════════


class TestDebit:

    async def test_debit_holds_days(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "5")

        ref = uuid.uuid4()
        bal = await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("2"), ref, ON)
        assert bal.balance == Decimal("3")
        assert bal.pending_deduction == Decimal("2")

        entries = await LeaveBalanceService.get_ledger(db, emp_id, policy.id)
        deduction = [e for e in entries if e.entry_type == LedgerEntryType.leave_deduction]
        assert len(deduction) == 1
        assert deduction[0].quantity == Decimal("-2")
        assert deduction[0].reference_id == ref

    async def test_insufficient_balance_writes_nothing(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "1")

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveBalanceService.debit(
                db, emp_id, policy.id, Decimal("1.5"), uuid.uuid4(), ON,
            )
        assert exc_info.value.available == Decimal("1")

        bal = await LeaveBalanceService.get_balance(db, emp_id, policy.id, 2025)
        assert bal.balance == Decimal("1")
        assert bal.pending_deduction == 0
        assert len(await LeaveBalanceService.get_ledger(db, emp_id, policy.id)) == 1

    async def test_debit_without_balance_row(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        with pytest.raises(InsufficientBalanceException):
            await LeaveBalanceService.debit(
                db, uuid.uuid4(), policy.id, Decimal("1"), None, ON,
            )

    async def test_debit_of_exact_balance_succeeds(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "2")
        bal = await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("2"), None, ON)
        assert bal.balance == 0

    async def test_debit_then_confirm_charges_once(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "6")
        await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("1"), None, ON)
        before = await LeaveBalanceService.get_balance(db, emp_id, policy.id, 2025)

        await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("2"), None, ON)
        after = await LeaveBalanceService.confirm_deduction(
            db, emp_id, policy.id, Decimal("2"), 2025,
        )
        assert after.pending_deduction == before.pending_deduction
        assert after.balance == before.balance - Decimal("2")

    async def test_confirm_never_goes_negative(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "3")
        await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("1"), None, ON)
        bal = await LeaveBalanceService.confirm_deduction(
            db, emp_id, policy.id, Decimal("5"), 2025,
        )
        assert bal.pending_deduction == 0
        assert bal.balance == Decimal("2")

    async def test_confirm_without_row(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        with pytest.raises(NotFoundException):
            await LeaveBalanceService.confirm_deduction(
                db, uuid.uuid4(), policy.id, Decimal("1"), 2025,
            )

    async def test_restore_releases_hold(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "4")
        ref = uuid.uuid4()
        await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("3"), ref, ON)

        bal = await LeaveBalanceService.restore(db, emp_id, policy.id, Decimal("3"), ref, ON)
        assert bal.balance == Decimal("4")
        assert bal.pending_deduction == 0


# ═════════════════════════════════════════════════════════════════════
# 4. Forfeit / adjust
# ═════════════════════════════════════════════════════════════════════


class TestForfeitAndAdjust:

    async def test_forfeit_is_clamped_to_balance(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "2")

        forfeited = await LeaveBalanceService.forfeit(
            db, emp_id, policy.id, Decimal("5"),
            LedgerEntryType.quarter_reset, date(2025, 3, 31), period="2025-Q1",
        )
        assert forfeited == Decimal("2")
        assert (await LeaveBalanceService.get_balance(db, emp_id, policy.id, 2025)).balance == 0

    async def test_forfeit_on_empty_balance_writes_nothing(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        emp_id = uuid.uuid4()
        forfeited = await LeaveBalanceService.forfeit(
            db, emp_id, policy.id, Decimal("1"),
            LedgerEntryType.quarter_reset, date(2025, 3, 31),
        )
        assert forfeited == 0
        assert await LeaveBalanceService.get_ledger(db, emp_id, policy.id) == []

    async def test_forfeit_requires_reset_type(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        with pytest.raises(ValidationException):
            await LeaveBalanceService.forfeit(
                db, uuid.uuid4(), policy.id, Decimal("1"),
                LedgerEntryType.monthly_accrual, ON,
            )

    async def test_manual_adjustment_both_directions(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await LeaveBalanceService.adjust(
            db, emp_id, policy.id, Decimal("2"), ON, "Joining bonus",
        )
        bal = await LeaveBalanceService.adjust(
            db, emp_id, policy.id, Decimal("-0.5"), ON, "Correction",
        )
        assert bal.balance == Decimal("1.5")
        assert bal.accrued_this_year == 0

    async def test_negative_adjustment_cannot_overdraw(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "1")
        with pytest.raises(InsufficientBalanceException):
            await LeaveBalanceService.adjust(
                db, emp_id, policy.id, Decimal("-2"), ON, "Too much",
            )

    async def test_adjustment_needs_reason(self, db: AsyncSession):
        policy = await _seed_leave_policy(db)
        with pytest.raises(ValidationException):
            await LeaveBalanceService.adjust(
                db, uuid.uuid4(), policy.id, Decimal("1"), ON, "",
            )


# ═════════════════════════════════════════════════════════════════════
# 5. Ledger invariant / reconciliation
# ═════════════════════════════════════════════════════════════════════


class TestReconcile:

    async def test_balance_equals_sum_of_ledger_after_mixed_operations(
        self, db: AsyncSession,
    ):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)

        for month in range(1, 7):
            await _credit(
                db, emp_id, policy.id, "1",
                on_date=date(2025, month, 1), period=f"2025-{month:02d}",
            )
        ref = uuid.uuid4()
        await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("2"), ref, ON)
        await LeaveBalanceService.confirm_deduction(db, emp_id, policy.id, Decimal("2"), 2025)
        await LeaveBalanceService.debit(db, emp_id, policy.id, Decimal("1"), None, ON)
        await LeaveBalanceService.restore(db, emp_id, policy.id, Decimal("1"), None, ON)
        await LeaveBalanceService.adjust(db, emp_id, policy.id, Decimal("0.5"), ON, "Fix")
        await LeaveBalanceService.forfeit(
            db, emp_id, policy.id, Decimal("1"),
            LedgerEntryType.quarter_reset, date(2025, 3, 31), period="2025-Q1",
        )

        report = await LeaveBalanceService.reconcile(db, emp_id, policy.id, 2025)
        assert report.is_consistent
        assert report.stored_balance == Decimal("3.5")
        assert report.entry_count == 11

        total = await LeaveBalanceService.sum_entries(db, emp_id, policy.id)
        assert total == report.stored_balance

    async def test_direct_balance_write_shows_drift(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "2")

        row = (await db.execute(
            select(LeaveBalance).where(LeaveBalance.employee_id == emp_id)
        )).scalars().one()
        row.balance = Decimal("5")
        await db.flush()

        report = await LeaveBalanceService.reconcile(db, emp_id, policy.id, 2025)
        assert not report.is_consistent
        assert report.drift == Decimal("3")

    async def test_sum_entries_filters_by_type_and_date(self, db: AsyncSession):
        emp_id = uuid.uuid4()
        policy = await _seed_leave_policy(db)
        await _credit(db, emp_id, policy.id, "1", on_date=date(2025, 1, 1))
        await _credit(db, emp_id, policy.id, "1", on_date=date(2025, 4, 1))
        await _credit(
            db, emp_id, policy.id, "2",
            entry_type=LedgerEntryType.carry_forward, on_date=date(2025, 3, 31),
        )

        q1 = await LeaveBalanceService.sum_entries(
            db, emp_id, policy.id,
            entry_types=[LedgerEntryType.monthly_accrual],
            start=date(2025, 1, 1), end=date(2025, 3, 31),
        )
        assert q1 == Decimal("1")
        assert await LeaveBalanceService.has_entry(
            db, emp_id, policy.id, [LedgerEntryType.monthly_accrual], "2025-01",
        ) is False
