"""
Budget module (``copro_modules.budget``).

Annual budget headers and categorized lines, budget-versus-actual
tracking, and the per-lot call for funds.  ``BudgetService`` owns the
transaction of every operation; the cached ``total_budget`` moves only
through atomic SQL increments issued together with the line change.
"""

from copro_modules.budget.config import BudgetConfig
from copro_modules.budget.models import (
    Budget,
    BudgetCallForFunds,
    BudgetCategory,
    BudgetLine,
    BudgetStatus,
    CategoryGroup,
    LotCallForFunds,
    VarianceReport,
)

__all__ = [
    "Budget",
    "BudgetCallForFunds",
    "BudgetCategory",
    "BudgetConfig",
    "BudgetLine",
    "BudgetStatus",
    "CategoryGroup",
    "LotCallForFunds",
    "VarianceReport",
]
