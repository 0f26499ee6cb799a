"""
Module: copro_kernel.models.journal
Responsibility: ORM persistence for journals and ledger lines.
Architecture position: Kernel > Models.  May import from db/ and models/account.

Invariants enforced:
    - debit >= 0 and credit >= 0, exactly one of them non-zero (database
      CHECK constraints back the service-level validation).
    - Lines are append-only.  Amounts, account, journal, date and residence
      never change after insert (db/immutability.py); corrections are
      reversing lines pointing back through ``reverses_line_id``.
    - A line is reversed at most once (unique reverses_line_id).
    - ``idempotency_key`` is unique: a retried post returns the original line.
    - Lines sharing an ``entry_id`` form one logical transaction whose
      debits equal its credits.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from copro_kernel.db.base import TrackedBase, UUIDString
from copro_kernel.models.account import Account


class JournalType(str, Enum):
    """Standard co-ownership journals."""

    BANK = "bank"  # BQ
    PURCHASES = "purchases"  # AC
    SALES = "sales"  # VE
    MISCELLANEOUS = "miscellaneous"  # OD
    OPENING = "opening"  # AN


class Journal(TrackedBase):
    """
    A named grouping of ledger postings.

    ``residence_id`` NULL means the journal is shared/default for the agency.
    """

    __tablename__ = "accounting_journals"

    __table_args__ = (
        UniqueConstraint("residence_id", "code", name="uq_journal_residence_code"),
        Index("idx_journal_agency", "agency_id"),
    )

    residence_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    agency_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    journal_type: Mapped[JournalType] = mapped_column(
        String(30), nullable=False, default=JournalType.MISCELLANEOUS
    )

    def __repr__(self) -> str:
        return f"<Journal {self.code}: {self.name}>"


class LedgerLine(TrackedBase):
    """
    One posting in the general ledger.

    ``created_by_id`` (TrackedBase) is the operator who posted the line.
    """

    __tablename__ = "accounting_lines"

    __table_args__ = (
        CheckConstraint("debit >= 0", name="chk_line_debit_non_negative"),
        CheckConstraint("credit >= 0", name="chk_line_credit_non_negative"),
        CheckConstraint(
            "(debit = 0 AND credit > 0) OR (debit > 0 AND credit = 0)",
            name="chk_line_single_side",
        ),
        UniqueConstraint("residence_id", "idempotency_key", name="uq_line_idempotency_key"),
        UniqueConstraint("reverses_line_id", name="uq_line_reverses"),
        Index("idx_line_residence_date", "residence_id", "date"),
        Index("idx_line_journal", "journal_id"),
        Index("idx_line_account", "account_id"),
        Index("idx_line_entry", "entry_id"),
    )

    residence_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    journal_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounting_journals.id"), nullable=False
    )

    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounting_accounts.id"), nullable=False
    )

    # Directory reference (not a database foreign key)
    lot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Groups the lines of one logical transaction
    entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    line_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    label: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    reverses_line_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounting_lines.id"), nullable=True
    )

    account: Mapped[Account] = relationship(Account, lazy="joined")
    journal: Mapped[Journal] = relationship(Journal, lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<LedgerLine {self.line_date} {self.account_id} "
            f"D={self.debit} C={self.credit}>"
        )
