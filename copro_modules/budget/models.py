"""
Budget Domain Models (``copro_modules.budget.models``).

Responsibility
--------------
Frozen dataclass value objects for annual budgets: the budget header,
its categorized lines, the category grouping used for presentation,
the budget-versus-actual report and the per-lot call for funds.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields are ``Decimal``.
* ``Budget.total_budget`` equals the sum of its lines' budgeted amounts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from copro_config.schema import BudgetCategory
from copro_engines.variance import CategoryVariance

__all__ = [
    "Budget",
    "BudgetCallForFunds",
    "BudgetCategory",
    "BudgetLine",
    "BudgetStatus",
    "CategoryGroup",
    "LotCallForFunds",
    "VarianceReport",
]


class BudgetStatus(str, Enum):
    """Budget lifecycle states."""

    DRAFT = "draft"
    VOTED = "voted"
    ACTIVE = "active"
    CLOSED = "closed"


# States whose total counts as "voted" for works fund thresholds
VOTED_STATES = (BudgetStatus.VOTED, BudgetStatus.ACTIVE, BudgetStatus.CLOSED)


@dataclass(frozen=True)
class Budget:
    id: UUID
    residence_id: UUID
    fiscal_year: int
    status: BudgetStatus
    total_budget: Decimal
    voted_at: datetime | None = None
    assembly_id: UUID | None = None


@dataclass(frozen=True)
class BudgetLine:
    id: UUID
    budget_id: UUID
    label: str
    category: BudgetCategory
    budgeted_amount: Decimal
    actual_amount: Decimal | None = None
    distribution_key_id: UUID | None = None
    account_prefix: str | None = None


@dataclass(frozen=True)
class CategoryGroup:
    """Lines of one category with their budgeted total."""

    category: BudgetCategory
    lines: tuple[BudgetLine, ...]
    category_total: Decimal


@dataclass(frozen=True)
class VarianceReport:
    budget_id: UUID
    fiscal_year: int
    categories: tuple[CategoryVariance, ...]
    total: CategoryVariance


@dataclass(frozen=True)
class LotCallForFunds:
    """What one lot owes for the year, split into instalments."""

    lot_id: UUID
    annual_amount: Decimal
    instalments: tuple[Decimal, ...]


@dataclass(frozen=True)
class BudgetCallForFunds:
    budget_id: UUID
    fiscal_year: int
    lots: tuple[LotCallForFunds, ...]
    # Budgeted amounts of lines without a distribution key
    unallocated: Decimal = Decimal("0")
    warnings: tuple[str, ...] = field(default_factory=tuple)
