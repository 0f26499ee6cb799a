"""
Reporting Domain Models (``copro_modules.reporting.models``).

Frozen report DTOs.  Every amount is a Decimal rounded to the cent.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from copro_config.schema import BudgetCategory

LEDGER_CSV_HEADERS = (
    "Date",
    "Journal code",
    "Account code",
    "Label",
    "Lot number",
    "Debit",
    "Credit",
)


@dataclass(frozen=True)
class ReportMetadata:
    report_type: str
    residence_id: UUID
    generated_at: datetime
    parameters: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class MonthlyRow:
    month: int
    revenue: Decimal
    expenses: Decimal

    @property
    def net(self) -> Decimal:
        return self.revenue - self.expenses


@dataclass(frozen=True)
class MonthlySummary:
    metadata: ReportMetadata
    year: int
    rows: tuple[MonthlyRow, ...]
    total_revenue: Decimal
    total_expenses: Decimal


@dataclass(frozen=True)
class ExpenseShare:
    category: BudgetCategory
    amount: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class ExpenseBreakdown:
    metadata: ReportMetadata
    budget_id: UUID
    fiscal_year: int
    total_actual: Decimal
    shares: tuple[ExpenseShare, ...]


@dataclass(frozen=True)
class Dashboard:
    metadata: ReportMetadata
    year: int
    month: int
    revenue: Decimal
    expenses: Decimal
    treasury: Decimal
    revenue_variation: Decimal
