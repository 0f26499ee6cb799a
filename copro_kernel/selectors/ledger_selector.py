"""
Module: copro_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: filtered line listing, debit and
    credit totals, per-month aggregates for reporting, and the integrity
    check that finds entries whose lines do not balance.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/dtos and selectors/base.py.

Invariants enforced:
    - Listings are bounded: newest first, capped at ``limit`` rows
      (default 100).
    - Aggregates derive from ledger lines at query time.  No ledger balance
      is stored anywhere.
    - Every query is keyed by residence_id.

Failure modes:
    - Empty results or zero totals when nothing matches.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, extract, func, or_, select

from copro_kernel.db.types import ZERO, round_money
from copro_kernel.domain.dtos import LedgerFilter, LedgerLineView, LedgerTotals, totals
from copro_kernel.models.account import Account, AccountType
from copro_kernel.models.journal import Journal, LedgerLine
from copro_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 100


class LedgerSelector(BaseSelector):
    """Queries over posted ledger lines."""

    def list_lines(
        self,
        residence_id: UUID,
        filters: LedgerFilter | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[LedgerLineView]:
        """
        Lines of a residence, newest first, at most ``limit`` of them.

        Ties on date are broken by creation time (latest first) so that a
        line posted just now comes before older lines of the same day.
        """
        filters = filters or LedgerFilter()
        query = (
            select(LedgerLine)
            .join(Account, LedgerLine.account_id == Account.id)
            .join(Journal, LedgerLine.journal_id == Journal.id)
            .where(LedgerLine.residence_id == residence_id)
        )

        if filters.journal_id is not None:
            query = query.where(LedgerLine.journal_id == filters.journal_id)
        if filters.journal_code:
            query = query.where(Journal.code == filters.journal_code.upper())
        if filters.account_id is not None:
            query = query.where(LedgerLine.account_id == filters.account_id)
        if filters.lot_id is not None:
            query = query.where(LedgerLine.lot_id == filters.lot_id)
        if filters.date_from is not None:
            query = query.where(LedgerLine.line_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(LedgerLine.line_date <= filters.date_to)
        if filters.search and filters.search.strip():
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(
                    LedgerLine.label.ilike(pattern),
                    Account.code.ilike(pattern),
                    LedgerLine.reference.ilike(pattern),
                )
            )

        query = query.order_by(
            LedgerLine.line_date.desc(),
            LedgerLine.created_at.desc(),
        ).limit(max(1, limit))

        rows = self.session.scalars(query).unique().all()
        return [LedgerLineView.from_model(row) for row in rows]

    def get_line(self, residence_id: UUID, line_id: UUID) -> LedgerLineView | None:
        line = self.session.get(LedgerLine, line_id)
        if line is None or line.residence_id != residence_id:
            return None
        return LedgerLineView.from_model(line)

    @staticmethod
    def totals(lines: Iterable[LedgerLineView]) -> LedgerTotals:
        return totals(lines)

    def account_totals(
        self,
        residence_id: UUID,
        account_code_prefix: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> LedgerTotals:
        """Debit and credit sums over every matching line (no page cap)."""
        query = (
            select(
                func.coalesce(func.sum(LedgerLine.debit), 0),
                func.coalesce(func.sum(LedgerLine.credit), 0),
            )
            .join(Account, LedgerLine.account_id == Account.id)
            .where(LedgerLine.residence_id == residence_id)
        )
        if account_code_prefix:
            query = query.where(Account.code.startswith(account_code_prefix, autoescape=True))
        if date_from is not None:
            query = query.where(LedgerLine.line_date >= date_from)
        if date_to is not None:
            query = query.where(LedgerLine.line_date <= date_to)

        debit, credit = self.session.execute(query).one()
        return LedgerTotals(
            total_debit=round_money(Decimal(str(debit))),
            total_credit=round_money(Decimal(str(credit))),
        )

    def monthly_totals(
        self,
        residence_id: UUID,
        year: int,
    ) -> dict[tuple[int, AccountType], LedgerTotals]:
        """(month, account type) -> debit/credit sums for one calendar year."""
        month = extract("month", LedgerLine.line_date)
        query = (
            select(
                month.label("month"),
                Account.account_type,
                func.sum(LedgerLine.debit),
                func.sum(LedgerLine.credit),
            )
            .join(Account, LedgerLine.account_id == Account.id)
            .where(
                LedgerLine.residence_id == residence_id,
                LedgerLine.line_date >= date(year, 1, 1),
                LedgerLine.line_date <= date(year, 12, 31),
            )
            .group_by(month, Account.account_type)
        )

        result: dict[tuple[int, AccountType], LedgerTotals] = {}
        for row_month, account_type, debit, credit in self.session.execute(query).all():
            result[(int(row_month), AccountType(account_type))] = LedgerTotals(
                total_debit=round_money(Decimal(str(debit or 0))),
                total_credit=round_money(Decimal(str(credit or 0))),
            )
        return result

    def lines_matching_amount(
        self,
        residence_id: UUID,
        amount: Decimal,
        date_from: date,
        date_to: date,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[LedgerLineView]:
        """Lines whose debit or credit equals ``abs(amount)`` within a date window."""
        target = abs(amount)
        # Tolerance of half a cent absorbs Numeric-as-float storage on SQLite
        low, high = target - Decimal("0.005"), target + Decimal("0.005")
        query = (
            select(LedgerLine)
            .where(
                LedgerLine.residence_id == residence_id,
                LedgerLine.line_date >= date_from,
                LedgerLine.line_date <= date_to,
                or_(
                    and_(LedgerLine.debit >= low, LedgerLine.debit <= high),
                    and_(LedgerLine.credit >= low, LedgerLine.credit <= high),
                ),
            )
            .order_by(LedgerLine.line_date.desc())
            .limit(limit)
        )
        rows = self.session.scalars(query).unique().all()
        return [LedgerLineView.from_model(row) for row in rows]

    def unbalanced_entries(self, residence_id: UUID) -> list[tuple[UUID, Decimal, Decimal]]:
        """
        Entries whose debits and credits differ.

        Returns (entry_id, total_debit, total_credit) tuples.  Lines without
        an entry_id are single postings and are not checked here.
        """
        query = (
            select(
                LedgerLine.entry_id,
                func.sum(LedgerLine.debit),
                func.sum(LedgerLine.credit),
            )
            .where(
                LedgerLine.residence_id == residence_id,
                LedgerLine.entry_id.is_not(None),
            )
            .group_by(LedgerLine.entry_id)
        )
        findings = []
        for entry_id, debit, credit in self.session.execute(query).all():
            debit = round_money(Decimal(str(debit or ZERO)))
            credit = round_money(Decimal(str(credit or ZERO)))
            if debit != credit:
                findings.append((entry_id, debit, credit))
        return findings

    def line_count(self, residence_id: UUID) -> int:
        return self.session.scalar(
            select(func.count(LedgerLine.id)).where(LedgerLine.residence_id == residence_id)
        ) or 0
