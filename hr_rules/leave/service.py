"""Leave balance ledger — the only writer of leave balances.

Business logic:
  - Lazily created balance row per (employee, policy, year)
  - Credits, debits (holds), confirmations, restores, forfeits, adjustments
  - Every change to ``balance`` is paired with exactly one ledger entry
  - Reconciliation of the stored balance against the ledger

Balance rows are read ``FOR UPDATE`` so concurrent writers for the same
(employee, policy) serialize on PostgreSQL. Nothing here commits: the caller
owns the transaction and rolls back the whole unit on error.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_rules.common.constants import ACCRUAL_ENTRY_TYPES, LedgerEntryType
from hr_rules.common.exceptions import (
    InsufficientBalanceException,
    LedgerWriteException,
    NotFoundException,
    ValidationException,
)
from hr_rules.leave.models import LeaveBalance, LeaveLedgerEntry, LeavePolicy
from hr_rules.leave.schemas import (
    BalanceSummary,
    LeaveBalanceOut,
    LedgerEntryOut,
    ReconciliationOut,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

_FORFEIT_TYPES = frozenset({
    LedgerEntryType.quarter_reset,
    LedgerEntryType.annual_reset,
    LedgerEntryType.carry_forward_debit,
})

_ADJUSTMENT_TYPES = frozenset({
    LedgerEntryType.manual_adjustment,
    LedgerEntryType.maximum_adjustment,
})


# ═════════════════════════════════════════════════════════════════════
# LeaveBalanceService
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceService:
    """Async ledger operations; every mutation goes through ``_post``."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _require_positive(field: str, amount: Decimal) -> None:
        if amount is None or amount <= 0:
            raise ValidationException({field: ["Must be greater than zero."]})

    @staticmethod
    async def _load_locked(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        try:
            result = await db.execute(
                select(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.leave_policy_id == leave_policy_id,
                    LeaveBalance.year == year,
                )
                .with_for_update()
            )
        except SQLAlchemyError as exc:
            raise LedgerWriteException(f"Could not lock leave balance: {exc}") from exc
        return result.scalars().first()

    @staticmethod
    async def _get_or_create_locked(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        year: int,
    ) -> LeaveBalance:
        balance = await LeaveBalanceService._load_locked(
            db, employee_id, leave_policy_id, year,
        )
        if balance is not None:
            return balance

        balance = LeaveBalance(
            employee_id=employee_id,
            leave_policy_id=leave_policy_id,
            year=year,
            balance=_ZERO,
            accrued_this_year=_ZERO,
            carry_forward_balance=_ZERO,
            pending_deduction=_ZERO,
        )
        db.add(balance)
        try:
            await db.flush()
        except SQLAlchemyError as exc:
            raise LedgerWriteException(f"Could not create leave balance: {exc}") from exc
        logger.debug(
            "Created leave balance for employee %s policy %s year %s",
            employee_id, leave_policy_id, year,
        )
        return balance

    @staticmethod
    async def _post(
        db: AsyncSession,
        balance: LeaveBalance,
        quantity: Decimal,
        entry_type: LedgerEntryType,
        on_date: date,
        *,
        period: Optional[str] = None,
        reference_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> LeaveLedgerEntry:
        """Append one ledger entry and apply it to the balance row in the same flush."""
        # A failed flush expires the row, so keep the keys for error reporting
        employee_id, leave_policy_id = balance.employee_id, balance.leave_policy_id
        entry = LeaveLedgerEntry(
            employee_id=employee_id,
            leave_policy_id=leave_policy_id,
            year=balance.year,
            entry_date=on_date,
            quantity=quantity,
            entry_type=entry_type,
            period=period,
            reference_id=reference_id,
            notes=notes,
        )
        db.add(entry)

        balance.balance = (balance.balance or _ZERO) + quantity
        if entry_type in ACCRUAL_ENTRY_TYPES:
            balance.accrued_this_year = (balance.accrued_this_year or _ZERO) + quantity
            balance.last_accrued_at = on_date
        elif entry_type == LedgerEntryType.carry_forward:
            balance.carry_forward_balance = (
                (balance.carry_forward_balance or _ZERO) + quantity
            )
        elif entry_type == LedgerEntryType.carry_forward_debit:
            balance.carry_forward_balance = max(
                _ZERO, (balance.carry_forward_balance or _ZERO) + quantity,
            )

        try:
            await db.flush()
        except SQLAlchemyError as exc:
            raise LedgerWriteException(
                f"Could not post {entry_type.value} for employee "
                f"{employee_id} policy {leave_policy_id}: {exc}"
            ) from exc

        logger.debug(
            "Ledger %s %s for employee %s policy %s (balance now %s)",
            entry_type.value, quantity, employee_id,
            leave_policy_id, balance.balance,
        )
        return entry

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        year: int,
    ) -> LeaveBalanceOut:
        """Current balance; a zero-valued projection when no row exists yet."""
        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_policy_id == leave_policy_id,
                LeaveBalance.year == year,
            )
        )
        balance = result.scalars().first()
        if balance is None:
            return LeaveBalanceOut(
                employee_id=employee_id,
                leave_policy_id=leave_policy_id,
                year=year,
            )
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def get_balances_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> list[BalanceSummary]:
        query = (
            select(LeaveBalance, LeavePolicy.code, LeavePolicy.name)
            .join(LeavePolicy, LeavePolicy.id == LeaveBalance.leave_policy_id)
            .where(LeaveBalance.employee_id == employee_id)
            .order_by(LeaveBalance.year, LeavePolicy.code)
        )
        if year is not None:
            query = query.where(LeaveBalance.year == year)

        result = await db.execute(query)
        summaries = []
        for balance, code, name in result.all():
            base = LeaveBalanceOut.model_validate(balance)
            summaries.append(
                BalanceSummary(**base.model_dump(), policy_code=code, policy_name=name)
            )
        return summaries

    @staticmethod
    async def get_ledger(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> list[LedgerEntryOut]:
        """Ledger entries, oldest first."""
        query = (
            select(LeaveLedgerEntry)
            .where(
                LeaveLedgerEntry.employee_id == employee_id,
                LeaveLedgerEntry.leave_policy_id == leave_policy_id,
            )
            .order_by(LeaveLedgerEntry.entry_date, LeaveLedgerEntry.created_at)
        )
        if year is not None:
            query = query.where(LeaveLedgerEntry.year == year)
        result = await db.execute(query)
        return [LedgerEntryOut.model_validate(e) for e in result.scalars().all()]

    @staticmethod
    async def sum_entries(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        *,
        entry_types: Optional[Iterable[LedgerEntryType]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Decimal:
        """Sum of ledger quantities, optionally filtered by type and entry-date range."""
        query = select(func.coalesce(func.sum(LeaveLedgerEntry.quantity), 0)).where(
            LeaveLedgerEntry.employee_id == employee_id,
            LeaveLedgerEntry.leave_policy_id == leave_policy_id,
        )
        if entry_types is not None:
            query = query.where(LeaveLedgerEntry.entry_type.in_(list(entry_types)))
        if start is not None:
            query = query.where(LeaveLedgerEntry.entry_date >= start)
        if end is not None:
            query = query.where(LeaveLedgerEntry.entry_date <= end)

        total = (await db.execute(query)).scalar()
        return Decimal(str(total)) if total is not None else _ZERO

    @staticmethod
    async def has_entry(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        entry_types: Iterable[LedgerEntryType],
        period: str,
    ) -> bool:
        result = await db.execute(
            select(LeaveLedgerEntry.id)
            .where(
                LeaveLedgerEntry.employee_id == employee_id,
                LeaveLedgerEntry.leave_policy_id == leave_policy_id,
                LeaveLedgerEntry.entry_type.in_(list(entry_types)),
                LeaveLedgerEntry.period == period,
            )
            .limit(1)
        )
        return result.scalar() is not None

    @staticmethod
    async def reconcile(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        year: int,
    ) -> ReconciliationOut:
        """Compare the stored balance with the sum of the year's ledger entries."""
        stored = await LeaveBalanceService.get_balance(
            db, employee_id, leave_policy_id, year,
        )
        result = await db.execute(
            select(
                func.coalesce(func.sum(LeaveLedgerEntry.quantity), 0),
                func.count(LeaveLedgerEntry.id),
            ).where(
                LeaveLedgerEntry.employee_id == employee_id,
                LeaveLedgerEntry.leave_policy_id == leave_policy_id,
                LeaveLedgerEntry.year == year,
            )
        )
        total, count = result.one()
        report = ReconciliationOut(
            employee_id=employee_id,
            leave_policy_id=leave_policy_id,
            year=year,
            stored_balance=stored.balance,
            ledger_balance=Decimal(str(total)),
            entry_count=count,
        )
        if not report.is_consistent:
            logger.warning(
                "Leave balance drift for employee %s policy %s year %s: %s",
                employee_id, leave_policy_id, year, report.drift,
            )
        return report

    # ─────────────────────────────────────────────────────────────────
    # Credit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def credit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        amount: Decimal,
        entry_type: LedgerEntryType,
        on_date: date,
        notes: Optional[str] = None,
        *,
        period: Optional[str] = None,
        year: Optional[int] = None,
    ) -> LeaveBalanceOut:
        """Add ``amount`` to the balance, creating the row on first use.

        ``year`` selects the balance row (defaults to ``on_date.year``); a Q4
        carry-forward credits the following year.
        """
        LeaveBalanceService._require_positive("amount", amount)
        if entry_type == LedgerEntryType.leave_deduction or entry_type in _FORFEIT_TYPES:
            raise ValidationException(
                {"entry_type": [f"{entry_type.value} is not a credit entry type."]}
            )

        balance = await LeaveBalanceService._get_or_create_locked(
            db, employee_id, leave_policy_id, year or on_date.year,
        )
        await LeaveBalanceService._post(
            db, balance, amount, entry_type, on_date, period=period, notes=notes,
        )
        return LeaveBalanceOut.model_validate(balance)

    # ─────────────────────────────────────────────────────────────────
    # Debit / confirm / restore
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def debit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        days: Decimal,
        reference_id: Optional[uuid.UUID],
        on_date: date,
        *,
        year: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> LeaveBalanceOut:
        """Hold ``days`` against the balance at request time.

        Raises InsufficientBalanceException without writing anything when the
        spendable balance is short.
        """
        LeaveBalanceService._require_positive("days", days)
        target_year = year or on_date.year

        balance = await LeaveBalanceService._load_locked(
            db, employee_id, leave_policy_id, target_year,
        )
        available = balance.balance if balance is not None else _ZERO
        if available < days:
            logger.info(
                "Insufficient balance for employee %s policy %s: %s < %s",
                employee_id, leave_policy_id, available, days,
            )
            raise InsufficientBalanceException(available=available, requested=days)

        balance.pending_deduction = (balance.pending_deduction or _ZERO) + days
        await LeaveBalanceService._post(
            db, balance, -days, LedgerEntryType.leave_deduction, on_date,
            reference_id=reference_id, notes=notes,
        )
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def confirm_deduction(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        days: Decimal,
        year: int,
    ) -> LeaveBalanceOut:
        """Release the hold on approval; ``balance`` was already reduced by ``debit``."""
        LeaveBalanceService._require_positive("days", days)
        balance = await LeaveBalanceService._load_locked(
            db, employee_id, leave_policy_id, year,
        )
        if balance is None:
            raise NotFoundException("LeaveBalance", f"{employee_id}/{leave_policy_id}/{year}")

        balance.pending_deduction = max(_ZERO, (balance.pending_deduction or _ZERO) - days)
        try:
            await db.flush()
        except SQLAlchemyError as exc:
            raise LedgerWriteException(f"Could not confirm deduction: {exc}") from exc
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def restore(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        days: Decimal,
        reference_id: Optional[uuid.UUID],
        on_date: date,
        *,
        year: Optional[int] = None,
        release_pending: bool = True,
        notes: Optional[str] = None,
    ) -> LeaveBalanceOut:
        """Give back days taken by ``debit`` (rejected or cancelled request).

        With ``release_pending`` the outstanding hold is cleared too; pass False
        when the deduction was already confirmed.
        """
        LeaveBalanceService._require_positive("days", days)
        balance = await LeaveBalanceService._get_or_create_locked(
            db, employee_id, leave_policy_id, year or on_date.year,
        )
        if release_pending:
            balance.pending_deduction = max(
                _ZERO, (balance.pending_deduction or _ZERO) - days,
            )
        await LeaveBalanceService._post(
            db, balance, days, LedgerEntryType.leave_restore, on_date,
            reference_id=reference_id, notes=notes,
        )
        return LeaveBalanceOut.model_validate(balance)

    # ─────────────────────────────────────────────────────────────────
    # Forfeit / adjust
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def forfeit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        days: Decimal,
        entry_type: LedgerEntryType,
        on_date: date,
        *,
        period: Optional[str] = None,
        year: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Decimal:
        """Write off up to ``days`` as a negative reset entry.

        Clamped to the spendable balance so a reset never drives it negative.
        Returns the quantity actually forfeited (0 when nothing was written).
        """
        if entry_type not in _FORFEIT_TYPES:
            raise ValidationException(
                {"entry_type": [f"{entry_type.value} is not a forfeiture entry type."]}
            )
        LeaveBalanceService._require_positive("days", days)

        balance = await LeaveBalanceService._load_locked(
            db, employee_id, leave_policy_id, year or on_date.year,
        )
        if balance is None:
            return _ZERO

        quantity = min(days, max(_ZERO, balance.balance or _ZERO))
        if quantity <= 0:
            return _ZERO

        await LeaveBalanceService._post(
            db, balance, -quantity, entry_type, on_date, period=period, notes=notes,
        )
        return quantity

    @staticmethod
    async def adjust(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_policy_id: uuid.UUID,
        quantity: Decimal,
        on_date: date,
        reason: str,
        *,
        entry_type: LedgerEntryType = LedgerEntryType.manual_adjustment,
        year: Optional[int] = None,
    ) -> LeaveBalanceOut:
        """Signed HR correction; a negative adjustment may not overdraw the balance."""
        if entry_type not in _ADJUSTMENT_TYPES:
            raise ValidationException(
                {"entry_type": [f"{entry_type.value} is not an adjustment entry type."]}
            )
        if quantity is None or quantity == 0:
            raise ValidationException({"quantity": ["Adjustment must be non-zero."]})
        if not reason:
            raise ValidationException({"reason": ["A reason is required."]})

        balance = await LeaveBalanceService._get_or_create_locked(
            db, employee_id, leave_policy_id, year or on_date.year,
        )
        if quantity < 0 and (balance.balance or _ZERO) + quantity < 0:
            raise InsufficientBalanceException(
                available=balance.balance or _ZERO, requested=-quantity,
            )

        await LeaveBalanceService._post(
            db, balance, quantity, entry_type, on_date, notes=reason,
        )
        logger.info(
            "Adjusted leave balance for employee %s policy %s by %s: %s",
            employee_id, leave_policy_id, quantity, reason,
        )
        return LeaveBalanceOut.model_validate(balance)
