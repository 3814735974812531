"""Sandwich-day calculator tests — pure logic, no database.

March 2025 reference: Fri 7, Sat 8, Sun 9, Mon 10 ... Fri 14, Sat 15, Sun 16,
Mon 17, Tue 18.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from hr_rules.common.exceptions import ValidationException
from hr_rules.leave.sandwich import SandwichRuleService
from hr_rules.leave.schemas import LeavePolicyConfig

HOLI_FRIDAY = date(2025, 3, 14)


def _policy(sandwich: bool) -> LeavePolicyConfig:
    return LeavePolicyConfig(
        id=uuid.uuid4(), code="CL", name="Casual Leave", sandwich_rule_enabled=sandwich,
    )


class TestCountSandwichDays:

    def test_counts_weekends_in_month(self):
        assert SandwichRuleService.count_sandwich_days(
            date(2025, 3, 1), date(2025, 3, 31), set(),
        ) == 10

    def test_counts_holidays(self):
        assert SandwichRuleService.count_sandwich_days(
            date(2025, 3, 10), date(2025, 3, 14), {HOLI_FRIDAY},
        ) == 1


class TestEstimateEffectiveDays:

    def test_weekend_only_request(self):
        est = SandwichRuleService.estimate_effective_days(
            date(2025, 3, 8), date(2025, 3, 9), set(),
        )
        assert (est.extended_from, est.extended_to) == (date(2025, 3, 8), date(2025, 3, 9))
        assert est.total_days == 2
        assert est.sandwich_days == 2
        assert est.effective_days == 0

    def test_working_boundaries_are_not_extended(self):
        est = SandwichRuleService.estimate_effective_days(
            date(2025, 3, 11), date(2025, 3, 13), set(),
        )
        assert (est.extended_from, est.extended_to) == (date(2025, 3, 11), date(2025, 3, 13))
        assert est.total_days == 3
        assert est.sandwich_days == 0
        assert est.adjacent_off_days is False

    def test_weekend_inside_range_is_counted(self):
        est = SandwichRuleService.estimate_effective_days(
            date(2025, 3, 7), date(2025, 3, 10), set(),
        )
        assert est.total_days == 4
        assert est.sandwich_days == 2
        assert est.effective_days == 2

    def test_holiday_end_extends_through_weekend(self):
        est = SandwichRuleService.estimate_effective_days(
            HOLI_FRIDAY, HOLI_FRIDAY, {HOLI_FRIDAY},
        )
        assert est.extended_from == HOLI_FRIDAY
        assert est.extended_to == date(2025, 3, 16)
        assert est.total_days == 3
        assert est.sandwich_days == 3
        assert est.effective_days == 0

    def test_weekend_start_extends_back_to_holiday(self):
        est = SandwichRuleService.estimate_effective_days(
            date(2025, 3, 16), date(2025, 3, 18), {HOLI_FRIDAY},
        )
        assert est.extended_from == HOLI_FRIDAY
        assert est.extended_to == date(2025, 3, 18)
        assert est.total_days == 5
        assert est.sandwich_days == 3
        assert est.effective_days == 2

    def test_monday_after_weekend_is_flagged_not_extended(self):
        est = SandwichRuleService.estimate_effective_days(
            date(2025, 3, 10), date(2025, 3, 10), set(),
        )
        assert est.extended_from == date(2025, 3, 10)
        assert est.total_days == 1
        assert est.sandwich_days == 0
        assert est.adjacent_off_days is True

    def test_friday_before_weekend_is_flagged_not_extended(self):
        est = SandwichRuleService.estimate_effective_days(
            date(2025, 3, 7), date(2025, 3, 7), set(),
        )
        assert est.extended_to == date(2025, 3, 7)
        assert est.adjacent_off_days is True

    def test_effective_is_total_minus_sandwich(self):
        holidays = {HOLI_FRIDAY, date(2025, 3, 19)}
        for start_day in range(1, 20):
            for length in range(0, 10):
                start = date(2025, 3, start_day)
                end = date(2025, 3, start_day + length)
                est = SandwichRuleService.estimate_effective_days(start, end, holidays)
                assert est.effective_days == est.total_days - est.sandwich_days
                assert est.extended_from <= start and est.extended_to >= end

    def test_reversed_range_rejected(self):
        with pytest.raises(ValidationException):
            SandwichRuleService.estimate_effective_days(
                date(2025, 3, 10), date(2025, 3, 7), set(),
            )


class TestPolicySandwichRule:

    def test_disabled_rule_does_not_extend(self):
        est = SandwichRuleService.apply_sandwich_rule(
            _policy(False), date(2025, 3, 16), date(2025, 3, 18), {HOLI_FRIDAY},
        )
        assert (est.extended_from, est.extended_to) == (date(2025, 3, 16), date(2025, 3, 18))
        assert est.total_days == 3
        assert est.sandwich_days == 0
        assert est.effective_days == 3

    def test_enabled_rule_extends(self):
        est = SandwichRuleService.apply_sandwich_rule(
            _policy(True), date(2025, 3, 16), date(2025, 3, 18), {HOLI_FRIDAY},
        )
        assert est.extended_from == HOLI_FRIDAY

    def test_charged_days_rule_off_counts_working_days_only(self):
        working, sandwich = SandwichRuleService.charged_days(
            _policy(False), date(2025, 3, 16), date(2025, 3, 18), {HOLI_FRIDAY},
        )
        assert working == Decimal("2")
        assert sandwich == Decimal("0")

    def test_charged_days_rule_on_adds_sandwiched_days(self):
        working, sandwich = SandwichRuleService.charged_days(
            _policy(True), date(2025, 3, 16), date(2025, 3, 18), {HOLI_FRIDAY},
        )
        assert working == Decimal("2")
        assert sandwich == Decimal("3")

    def test_charged_days_rejects_reversed_range(self):
        with pytest.raises(ValidationException):
            SandwichRuleService.charged_days(
                _policy(True), date(2025, 3, 18), date(2025, 3, 16), set(),
            )
