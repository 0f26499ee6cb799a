"""
Pure report transformation functions.

ZERO I/O.  No database access, no clock access.  The service loads
ledger and budget figures and hands them to these functions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from copro_config.schema import BudgetCategory
from copro_kernel.db.types import ZERO, round_money
from copro_kernel.domain.dtos import LedgerLineView, LedgerTotals
from copro_kernel.domain.references import DirectoryResolver, lot_display
from copro_kernel.models.account import AccountType
from copro_modules.reporting.models import ExpenseShare, MonthlyRow

_HUNDRED = Decimal("100")
_PCT = Decimal("0.01")


def format_amount(value: Decimal, decimal_separator: str = ",") -> str:
    """Cent-rounded amount with the given decimal separator, no grouping."""
    return str(round_money(value)).replace(".", decimal_separator)


def format_date(value: date, date_format: str = "%d/%m/%Y") -> str:
    return value.strftime(date_format)


def ledger_csv_row(
    line: LedgerLineView,
    directory: DirectoryResolver | None = None,
    decimal_separator: str = ",",
    date_format: str = "%d/%m/%Y",
) -> tuple[str, ...]:
    return (
        format_date(line.line_date, date_format),
        line.journal_code,
        line.account_code,
        line.label,
        lot_display(directory, line.lot_id),
        format_amount(line.debit, decimal_separator),
        format_amount(line.credit, decimal_separator),
    )


def revenue_of(totals: LedgerTotals | None) -> Decimal:
    """Net credit of revenue accounts."""
    if totals is None:
        return ZERO
    return totals.total_credit - totals.total_debit


def expenses_of(totals: LedgerTotals | None) -> Decimal:
    """Net debit of expense accounts."""
    if totals is None:
        return ZERO
    return totals.total_debit - totals.total_credit


def build_monthly_rows(
    totals: Mapping[tuple[int, AccountType], LedgerTotals],
) -> tuple[MonthlyRow, ...]:
    """Twelve rows, one per month, zero-filled."""
    return tuple(
        MonthlyRow(
            month=month,
            revenue=round_money(revenue_of(totals.get((month, AccountType.REVENUE)))),
            expenses=round_money(expenses_of(totals.get((month, AccountType.EXPENSE)))),
        )
        for month in range(1, 13)
    )


def build_expense_shares(
    actuals: Iterable[tuple[BudgetCategory, Decimal]],
) -> tuple[ExpenseShare, ...]:
    """
    Each category's share of total actual spending, in percent.

    Categories come out in declaration order; categories with no
    spending are omitted.  A zero total gives 0 % everywhere.
    """
    per_category: dict[BudgetCategory, Decimal] = {}
    for category, amount in actuals:
        per_category[category] = per_category.get(category, ZERO) + amount
    total = sum(per_category.values(), ZERO)

    shares = []
    for category in BudgetCategory:
        amount = per_category.get(category)
        if amount is None or amount == ZERO:
            continue
        pct = ZERO if total == ZERO else (amount / total * _HUNDRED).quantize(
            _PCT, rounding=ROUND_HALF_UP
        )
        shares.append(ExpenseShare(category=category, amount=round_money(amount), percentage=pct))
    return tuple(shares)


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1
