"""
Module: copro_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique within its scope: per residence, or among global
      accounts (residence_id IS NULL).  The non-null case is a database
      constraint; the global case is checked by LedgerService.
    - Once referenced by a ledger line only ``name`` may change.  Deletion
      of a referenced account is rejected (AccountReferencedError).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from copro_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class Account(TrackedBase):
    """
    Chart of accounts entry.

    ``residence_id`` NULL marks a global account shared by every residence
    (e.g. the agency's standard chart).
    """

    __tablename__ = "accounting_accounts"

    __table_args__ = (
        UniqueConstraint("residence_id", "code", name="uq_account_residence_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_residence", "residence_id"),
    )

    residence_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounting_accounts.id"),
        nullable=True,
    )

    # System accounts are seeded and cannot be deleted
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def is_global(self) -> bool:
        return self.residence_id is None

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
