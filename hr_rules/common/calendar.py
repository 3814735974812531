"""Calendar helpers: weekend/holiday predicates, day ranges, quarter math."""

from __future__ import annotations

import calendar
from collections.abc import Container, Iterator
from datetime import date, timedelta

from hr_rules.common.constants import WEEKEND_DAYS


def is_weekend(d: date) -> bool:
    return d.weekday() in WEEKEND_DAYS


def is_holiday(d: date, holidays: Container[date]) -> bool:
    return d in holidays


def is_non_working_day(d: date, holidays: Container[date]) -> bool:
    """Weekend (Sat/Sun, policy-agnostic) or a listed holiday."""
    return is_weekend(d) or is_holiday(d, holidays)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive (nothing if start > end)."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


# ── Months ──────────────────────────────────────────────────────────

def month_bounds(d: date) -> tuple[date, date]:
    last = calendar.monthrange(d.year, d.month)[1]
    return date(d.year, d.month, 1), date(d.year, d.month, last)


def format_period_month(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


# ── Quarters ────────────────────────────────────────────────────────

def quarter_of(d: date) -> int:
    return (d.month - 1) // 3 + 1


def quarter_bounds(year: int, quarter: int) -> tuple[date, date]:
    """First and last day of ``quarter`` (1–4) in ``year``."""
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"quarter must be 1-4, got {quarter}")
    end_month = quarter * 3
    start = date(year, end_month - 2, 1)
    end = date(year, end_month, calendar.monthrange(year, end_month)[1])
    return start, end


def quarter_end(d: date) -> date:
    """Last day of the quarter containing ``d``."""
    return quarter_bounds(d.year, quarter_of(d))[1]


def is_quarter_end(d: date) -> bool:
    return d == quarter_end(d)


def format_period_quarter(d: date) -> str:
    return f"{d.year:04d}-Q{quarter_of(d)}"


def year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)
