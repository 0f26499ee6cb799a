"""
Works fund threshold arithmetic.

The reserve for major works must hold at least ``minimum_percentage`` % of
the latest voted annual budget.  These functions only report; nothing here
blocks another operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from copro_engines.tracer import traced_engine

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FundPosition:
    balance: Decimal
    minimum_percentage: Decimal
    budget_total: Decimal
    required_minimum: Decimal
    progress: Decimal
    shortfall: Decimal

    @property
    def is_compliant(self) -> bool:
        return self.shortfall == _ZERO


def required_minimum(budget_total: Decimal, minimum_percentage: Decimal) -> Decimal:
    """budget_total x minimum_percentage / 100."""
    return budget_total * minimum_percentage / _HUNDRED


def progress(balance: Decimal, required: Decimal) -> Decimal:
    """balance / required, 0 when nothing is required."""
    if required == _ZERO:
        return _ZERO
    return balance / required


@traced_engine(
    "works_fund.position", "1.0",
    fingerprint_fields=("balance", "minimum_percentage", "budget_total"),
)
def fund_position(
    balance: Decimal,
    minimum_percentage: Decimal,
    budget_total: Decimal,
) -> FundPosition:
    required = required_minimum(budget_total, minimum_percentage)
    return FundPosition(
        balance=balance,
        minimum_percentage=minimum_percentage,
        budget_total=budget_total,
        required_minimum=required,
        progress=progress(balance, required),
        shortfall=max(required - balance, _ZERO),
    )
