"""
Reporting module (``copro_modules.reporting``).

Read-only consumers of the ledger, budgets and bank balances.
"""

from copro_modules.reporting.config import ReportingConfig
from copro_modules.reporting.export import export_ledger_csv
from copro_modules.reporting.models import (
    Dashboard,
    ExpenseBreakdown,
    ExpenseShare,
    MonthlyRow,
    MonthlySummary,
    ReportMetadata,
)

__all__ = [
    "Dashboard",
    "ExpenseBreakdown",
    "ExpenseShare",
    "MonthlyRow",
    "MonthlySummary",
    "ReportMetadata",
    "ReportingConfig",
    "export_ledger_csv",
]
