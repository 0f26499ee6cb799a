"""
Kernel data transfer objects (``copro_kernel.domain.dtos``).

Frozen dataclasses returned by the ledger service and selector.  Callers
never receive ORM instances, so nothing outside the kernel can mutate a
posted line by accident.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from copro_kernel.models.account import AccountType


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    residence_id: UUID | None
    code: str
    name: str
    account_type: AccountType
    parent_id: UUID | None = None
    is_system: bool = False

    @classmethod
    def from_model(cls, account) -> AccountInfo:
        return cls(
            id=account.id,
            residence_id=account.residence_id,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            parent_id=account.parent_id,
            is_system=bool(account.is_system),
        )


@dataclass(frozen=True)
class JournalInfo:
    id: UUID
    residence_id: UUID | None
    code: str
    name: str
    journal_type: str
    agency_id: UUID | None = None

    @classmethod
    def from_model(cls, journal) -> JournalInfo:
        return cls(
            id=journal.id,
            residence_id=journal.residence_id,
            code=journal.code,
            name=journal.name,
            journal_type=str(getattr(journal.journal_type, "value", journal.journal_type)),
            agency_id=journal.agency_id,
        )


@dataclass(frozen=True)
class LedgerLineView:
    """A posted ledger line with its journal and account codes resolved."""

    id: UUID
    residence_id: UUID
    journal_id: UUID
    journal_code: str
    account_id: UUID
    account_code: str
    account_type: AccountType
    line_date: date
    label: str
    debit: Decimal
    credit: Decimal
    created_by_id: UUID
    lot_id: UUID | None = None
    entry_id: UUID | None = None
    reference: str | None = None
    reverses_line_id: UUID | None = None

    @property
    def signed_amount(self) -> Decimal:
        """Debit positive, credit negative."""
        return self.debit - self.credit

    def matches(self, search: str) -> bool:
        """Case-insensitive free-text match on label, account code, reference."""
        needle = search.strip().lower()
        if not needle:
            return True
        haystack = (self.label or "", self.account_code, self.reference or "")
        return any(needle in value.lower() for value in haystack)

    @classmethod
    def from_model(cls, line) -> LedgerLineView:
        return cls(
            id=line.id,
            residence_id=line.residence_id,
            journal_id=line.journal_id,
            journal_code=line.journal.code,
            account_id=line.account_id,
            account_code=line.account.code,
            account_type=AccountType(line.account.account_type),
            line_date=line.line_date,
            label=line.label,
            debit=line.debit,
            credit=line.credit,
            created_by_id=line.created_by_id,
            lot_id=line.lot_id,
            entry_id=line.entry_id,
            reference=line.reference,
            reverses_line_id=line.reverses_line_id,
        )


@dataclass(frozen=True)
class LineSpec:
    """One side of a multi-line entry passed to ``LedgerService.post_entry``."""

    account_id: UUID
    debit: Decimal | str | int = Decimal("0")
    credit: Decimal | str | int = Decimal("0")
    lot_id: UUID | None = None
    label: str | None = None


@dataclass(frozen=True)
class LedgerTotals:
    total_debit: Decimal
    total_credit: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_debit - self.total_credit

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


def totals(lines: Iterable[LedgerLineView]) -> LedgerTotals:
    """Fold debit and credit over a sequence of lines."""
    total_debit = Decimal("0")
    total_credit = Decimal("0")
    for line in lines:
        total_debit += line.debit
        total_credit += line.credit
    return LedgerTotals(total_debit=total_debit, total_credit=total_credit)


@dataclass(frozen=True)
class LedgerFilter:
    """Filters accepted by ``LedgerSelector.list_lines``."""

    journal_id: UUID | None = None
    journal_code: str | None = None
    account_id: UUID | None = None
    lot_id: UUID | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = None
