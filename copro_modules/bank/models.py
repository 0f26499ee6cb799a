"""
Bank Domain Models (``copro_modules.bank.models``).

Frozen dataclasses for bank accounts, statement transactions and the
results of imports and reconciliation runs.  Transaction amounts are
signed: positive for incoming funds, negative for outgoing.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class BankAccount:
    id: UUID
    residence_id: UUID
    bank_name: str
    iban: str
    balance: Decimal
    is_main: bool
    bic: str | None = None
    account_name: str | None = None
    last_sync_at: datetime | None = None


@dataclass(frozen=True)
class BankTransaction:
    id: UUID
    bank_account_id: UUID
    transaction_date: date
    label: str
    amount: Decimal
    is_reconciled: bool = False
    value_date: date | None = None
    counterparty: str | None = None
    category: str | None = None
    external_id: str | None = None
    reconciled_at: datetime | None = None
    reconciled_with: str | None = None

    @property
    def is_incoming(self) -> bool:
        return self.amount > 0


@dataclass(frozen=True)
class TransactionRow:
    """One statement row handed to ``BankService.import_transactions``."""

    transaction_date: date
    label: str
    amount: Decimal | str | int
    external_id: str | None = None
    value_date: date | None = None
    counterparty: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class ImportResult:
    imported: tuple[BankTransaction, ...]
    skipped_external_ids: tuple[str, ...]
    balance: Decimal


@dataclass(frozen=True)
class ReconcileResult:
    reconciled: tuple[UUID, ...]
    already_reconciled: tuple[UUID, ...]
