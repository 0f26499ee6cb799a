"""
Module: copro_engines.variance
Responsibility:
    Budget-versus-actual arithmetic: remaining amount, percent used, and
    a spending trend per budget category, plus month-over-month variation
    for the reporting dashboard.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - remaining = budgeted - actual (negative when over budget).
    - percent_used is 0 when nothing was budgeted.
    - trend is OVER when actual > budgeted, UNDER when actual is more than
      ``tolerance_pct`` percent below budget, STABLE otherwise.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from copro_engines.tracer import traced_engine

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PCT = Decimal("0.01")


class Trend(str, Enum):
    OVER = "over"
    UNDER = "under"
    STABLE = "stable"


@dataclass(frozen=True)
class CategoryVariance:
    """Budgeted versus actual for one category (or for a whole budget)."""

    category: str
    budgeted: Decimal
    actual: Decimal
    remaining: Decimal
    percent_used: Decimal
    trend: Trend

    @property
    def is_over_budget(self) -> bool:
        return self.trend is Trend.OVER


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100 rounded to 2 places; 0 when whole is 0."""
    if whole == _ZERO:
        return _ZERO
    return (part / whole * _HUNDRED).quantize(_PCT, rounding=ROUND_HALF_UP)


def classify_trend(budgeted: Decimal, actual: Decimal, tolerance_pct: Decimal) -> Trend:
    if actual > budgeted:
        return Trend.OVER
    if budgeted > _ZERO and percent_of(budgeted - actual, budgeted) > tolerance_pct:
        return Trend.UNDER
    return Trend.STABLE


@traced_engine(
    "variance.category", "1.0",
    fingerprint_fields=("category", "budgeted", "actual", "tolerance_pct"),
)
def category_variance(
    category: str,
    budgeted: Decimal,
    actual: Decimal,
    tolerance_pct: Decimal = Decimal("5"),
) -> CategoryVariance:
    return CategoryVariance(
        category=category,
        budgeted=budgeted,
        actual=actual,
        remaining=budgeted - actual,
        percent_used=percent_of(actual, budgeted),
        trend=classify_trend(budgeted, actual, tolerance_pct),
    )


def total_variance(
    rows: Sequence[CategoryVariance],
    tolerance_pct: Decimal = Decimal("5"),
) -> CategoryVariance:
    """Roll category rows up into one row labelled ``total``."""
    budgeted = sum((row.budgeted for row in rows), _ZERO)
    actual = sum((row.actual for row in rows), _ZERO)
    return CategoryVariance(
        category="total",
        budgeted=budgeted,
        actual=actual,
        remaining=budgeted - actual,
        percent_used=percent_of(actual, budgeted),
        trend=classify_trend(budgeted, actual, tolerance_pct),
    )


def month_variation(current: Decimal, previous: Decimal) -> Decimal:
    """Percent change from ``previous`` to ``current``; 0 when previous is 0."""
    if previous == _ZERO:
        return _ZERO
    return ((current - previous) / abs(previous) * _HUNDRED).quantize(_PCT, rounding=ROUND_HALF_UP)
