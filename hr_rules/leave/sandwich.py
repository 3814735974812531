"""Sandwich-day calculation for leave spans.

A leave span that starts or ends on a weekend/holiday is stretched outward
through the adjacent run of non-working days, and every non-working day inside
the stretched span is reported as a sandwich day.

Only a boundary that is itself non-working triggers the stretch. A weekend
sitting strictly between two separate working-day requests (Fri + Mon) is not
pulled in by either request; such spans are flagged with ``adjacent_off_days``
instead.
"""

from __future__ import annotations

from collections.abc import Container
from datetime import date, timedelta
from decimal import Decimal

from hr_rules.common.calendar import is_non_working_day, iter_days
from hr_rules.common.exceptions import ValidationException
from hr_rules.leave.schemas import LeavePolicyConfig, SandwichEstimate

_ONE_DAY = timedelta(days=1)


class SandwichRuleService:
    """Pure sandwich-rule arithmetic; holidays are supplied by the caller."""

    @staticmethod
    def _validate_range(from_date: date, to_date: date) -> None:
        if from_date > to_date:
            raise ValidationException(
                {"date_range": ["from_date must be before or equal to to_date."]}
            )

    @staticmethod
    def count_sandwich_days(
        from_date: date,
        to_date: date,
        holidays: Container[date],
    ) -> int:
        """Weekend or holiday days in the inclusive range."""
        return sum(1 for d in iter_days(from_date, to_date) if is_non_working_day(d, holidays))

    @staticmethod
    def _extend_start(from_date: date, holidays: Container[date]) -> date:
        extended = from_date
        if is_non_working_day(extended, holidays):
            while is_non_working_day(extended - _ONE_DAY, holidays):
                extended -= _ONE_DAY
        return extended

    @staticmethod
    def _extend_end(to_date: date, holidays: Container[date]) -> date:
        extended = to_date
        if is_non_working_day(extended, holidays):
            while is_non_working_day(extended + _ONE_DAY, holidays):
                extended += _ONE_DAY
        return extended

    @staticmethod
    def estimate_effective_days(
        from_date: date,
        to_date: date,
        holidays: Container[date],
    ) -> SandwichEstimate:
        SandwichRuleService._validate_range(from_date, to_date)

        extended_from = SandwichRuleService._extend_start(from_date, holidays)
        extended_to = SandwichRuleService._extend_end(to_date, holidays)

        total_days = (extended_to - extended_from).days + 1
        sandwich_days = SandwichRuleService.count_sandwich_days(
            extended_from, extended_to, holidays,
        )

        adjacent = (
            not is_non_working_day(extended_from, holidays)
            and is_non_working_day(extended_from - _ONE_DAY, holidays)
        ) or (
            not is_non_working_day(extended_to, holidays)
            and is_non_working_day(extended_to + _ONE_DAY, holidays)
        )

        return SandwichEstimate(
            original_from=from_date,
            original_to=to_date,
            extended_from=extended_from,
            extended_to=extended_to,
            total_days=total_days,
            sandwich_days=sandwich_days,
            effective_days=total_days - sandwich_days,
            adjacent_off_days=adjacent,
        )

    @staticmethod
    def apply_sandwich_rule(
        policy: LeavePolicyConfig,
        from_date: date,
        to_date: date,
        holidays: Container[date],
    ) -> SandwichEstimate:
        """Estimate under the policy: no stretching when the rule is disabled."""
        if policy.sandwich_rule_enabled:
            return SandwichRuleService.estimate_effective_days(from_date, to_date, holidays)

        SandwichRuleService._validate_range(from_date, to_date)
        total_days = (to_date - from_date).days + 1
        return SandwichEstimate(
            original_from=from_date,
            original_to=to_date,
            extended_from=from_date,
            extended_to=to_date,
            total_days=total_days,
            sandwich_days=0,
            effective_days=total_days,
        )

    @staticmethod
    def charged_days(
        policy: LeavePolicyConfig,
        from_date: date,
        to_date: date,
        holidays: Container[date],
    ) -> tuple[Decimal, Decimal]:
        """(working days, sandwiched days) a request consumes under ``policy``.

        With the rule on, non-working days inside the stretched span are charged
        too; with it off, only working days in ``[from_date, to_date]`` count.
        """
        SandwichRuleService._validate_range(from_date, to_date)
        working = sum(
            1 for d in iter_days(from_date, to_date) if not is_non_working_day(d, holidays)
        )
        if not policy.sandwich_rule_enabled:
            return Decimal(working), Decimal("0")

        estimate = SandwichRuleService.estimate_effective_days(from_date, to_date, holidays)
        return Decimal(estimate.effective_days), Decimal(estimate.sandwich_days)
