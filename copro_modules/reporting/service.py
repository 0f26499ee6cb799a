"""
Reporting Module Service (``copro_modules.reporting.service``).

Responsibility
--------------
Read-only views over the ledger, budgets and bank balances: the monthly
revenue/expense summary, the expense breakdown of a budget, the monthly
dashboard and the ledger CSV export.

Architecture position
---------------------
**Modules layer**.  Loads figures through ``LedgerSelector``,
``BudgetService`` and ``BankService`` and hands them to the pure
functions in ``statements.py``.  Constructor: ``session`` + ``clock`` +
``config``.

Invariants enforced
-------------------
* Read-only.  No method writes to the database.
* Revenue is the net credit of revenue accounts, expenses the net debit
  of expense accounts.
* Revenue variation is 0 when the previous month had no revenue.

Failure modes
-------------
* ``ValueError`` for a month outside 1..12, raised before any query.
* ``BudgetNotFoundError`` for another residence's budget.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TextIO
from uuid import UUID

from sqlalchemy.orm import Session

from copro_engines.variance import month_variation
from copro_kernel.db.types import ZERO, round_money
from copro_kernel.domain.clock import Clock, SystemClock
from copro_kernel.domain.dtos import LedgerFilter
from copro_kernel.domain.references import DirectoryResolver
from copro_kernel.domain.scope import CallerScope
from copro_kernel.logging_config import get_logger
from copro_kernel.models.account import AccountType
from copro_kernel.selectors.ledger_selector import LedgerSelector
from copro_modules.bank.service import BankService
from copro_modules.budget.service import BudgetService
from copro_modules.reporting.config import ReportingConfig
from copro_modules.reporting.export import export_ledger_csv
from copro_modules.reporting.models import (
    Dashboard,
    ExpenseBreakdown,
    MonthlySummary,
    ReportMetadata,
)
from copro_modules.reporting.statements import (
    build_expense_shares,
    build_monthly_rows,
    expenses_of,
    previous_month,
    revenue_of,
)

logger = get_logger("modules.reporting.service")


class ReportingService:
    """
    Residence report generation.

    Contract
    --------
    * Every public method returns a frozen report DTO carrying
      ``ReportMetadata`` (type, residence, generation time, parameters),
      except ``export_ledger`` which returns the number of rows written.
    * All methods are read-only.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ReportingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ReportingConfig.with_defaults()
        self._ledger = LedgerSelector(session)

    def monthly_summary(self, residence_id: UUID, year: int) -> MonthlySummary:
        rows = build_monthly_rows(self._ledger.monthly_totals(residence_id, year))
        logger.info("report_generated", extra={
            "report_type": "monthly_summary",
            "residence_id": str(residence_id),
            "year": year,
        })
        return MonthlySummary(
            metadata=self._metadata("monthly_summary", residence_id, year=year),
            year=year,
            rows=rows,
            total_revenue=sum((row.revenue for row in rows), ZERO),
            total_expenses=sum((row.expenses for row in rows), ZERO),
        )

    def expense_breakdown(self, scope: CallerScope, budget_id: UUID) -> ExpenseBreakdown:
        budgets = BudgetService(self._session, clock=self._clock, auto_commit=False)
        budget = budgets.get_budget(scope, budget_id)
        lines = budgets.lines(scope, budget_id)
        shares = build_expense_shares((line.category, line.actual_amount or ZERO) for line in lines)
        logger.info("report_generated", extra={
            "report_type": "expense_breakdown",
            "residence_id": str(scope.residence_id),
            "budget_id": str(budget_id),
        })
        return ExpenseBreakdown(
            metadata=self._metadata(
                "expense_breakdown", scope.residence_id, budget_id=budget_id,
            ),
            budget_id=budget_id,
            fiscal_year=budget.fiscal_year,
            total_actual=sum((share.amount for share in shares), ZERO),
            shares=shares,
        )

    def dashboard(self, residence_id: UUID, year: int, month: int) -> Dashboard:
        if not 1 <= month <= 12:
            raise ValueError(f"month must be in 1..12, got {month}")

        revenue, expenses = self._month_figures(residence_id, year, month)
        prev_year, prev_month = previous_month(year, month)
        prev_revenue, _ = self._month_figures(residence_id, prev_year, prev_month)
        treasury = BankService(self._session, clock=self._clock, auto_commit=False).treasury(
            residence_id
        )

        logger.info("report_generated", extra={
            "report_type": "dashboard",
            "residence_id": str(residence_id),
            "year": year,
            "month": month,
        })
        return Dashboard(
            metadata=self._metadata("dashboard", residence_id, year=year, month=month),
            year=year,
            month=month,
            revenue=revenue,
            expenses=expenses,
            treasury=treasury,
            revenue_variation=month_variation(revenue, prev_revenue),
        )

    def export_ledger(
        self,
        residence_id: UUID,
        stream: TextIO,
        filters: LedgerFilter | None = None,
        directory: DirectoryResolver | None = None,
    ) -> int:
        """Every line matching ``filters``, newest first, as CSV."""
        limit = self._ledger.line_count(residence_id)
        lines = self._ledger.list_lines(residence_id, filters, limit=limit) if limit else []
        return export_ledger_csv(
            lines,
            directory,
            stream,
            delimiter=self._config.csv_delimiter,
            decimal_separator=self._config.csv_decimal_separator,
        )

    def _month_figures(self, residence_id: UUID, year: int, month: int) -> tuple[Decimal, Decimal]:
        totals = self._ledger.monthly_totals(residence_id, year)
        return (
            round_money(revenue_of(totals.get((month, AccountType.REVENUE)))),
            round_money(expenses_of(totals.get((month, AccountType.EXPENSE)))),
        )

    def _metadata(self, report_type: str, residence_id: UUID, **parameters) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            residence_id=residence_id,
            generated_at=self._clock.now(),
            parameters=tuple(sorted((k, str(v)) for k, v in parameters.items())),
        )
