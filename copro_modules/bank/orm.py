"""
SQLAlchemy ORM persistence models for bank accounts and transactions.

Invariants enforced
-------------------
* At most one main account per residence (partial unique index).
* ``external_id`` is unique per bank account, so a statement imported
  twice never creates duplicate transactions.
* ``balance`` moves only through atomic ``balance = balance + :delta``
  statements issued by ``BankService``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from copro_kernel.db.base import TrackedBase, UUIDString


class BankAccountModel(TrackedBase):
    """Maps to the ``BankAccount`` DTO."""

    __tablename__ = "bank_accounts"

    __table_args__ = (
        Index("idx_bank_account_residence", "residence_id"),
        Index(
            "uq_bank_account_main",
            "residence_id",
            unique=True,
            postgresql_where=text("is_main"),
            sqlite_where=text("is_main"),
        ),
    )

    residence_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    iban: Mapped[str] = mapped_column(String(34), nullable=False)
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_main: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    transactions: Mapped[list["BankTransactionModel"]] = relationship(
        "BankTransactionModel", back_populates="bank_account"
    )

    def to_dto(self):
        from copro_modules.bank.models import BankAccount

        return BankAccount(
            id=self.id,
            residence_id=self.residence_id,
            bank_name=self.bank_name,
            account_name=self.account_name,
            iban=self.iban,
            bic=self.bic,
            balance=self.balance,
            is_main=bool(self.is_main),
            last_sync_at=self.last_sync_at,
        )

    def __repr__(self) -> str:
        return f"<BankAccountModel {self.bank_name} {self.iban[-4:]} main={self.is_main}>"


class BankTransactionModel(TrackedBase):
    """Maps to the ``BankTransaction`` DTO."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        UniqueConstraint("bank_account_id", "external_id", name="uq_bank_transaction_external"),
        Index("idx_bank_transaction_pending", "bank_account_id", "is_reconciled"),
        Index("idx_bank_transaction_date", "date"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_accounts.id"), nullable=False
    )
    transaction_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    value_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    label: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    counterparty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciled_with: Mapped[str | None] = mapped_column(String(255), nullable=True)

    bank_account: Mapped[BankAccountModel] = relationship(
        BankAccountModel, back_populates="transactions"
    )

    def to_dto(self):
        from copro_modules.bank.models import BankTransaction

        return BankTransaction(
            id=self.id,
            bank_account_id=self.bank_account_id,
            transaction_date=self.transaction_date,
            value_date=self.value_date,
            label=self.label,
            counterparty=self.counterparty,
            category=self.category,
            amount=self.amount,
            external_id=self.external_id,
            is_reconciled=bool(self.is_reconciled),
            reconciled_at=self.reconciled_at,
            reconciled_with=self.reconciled_with,
        )

    @classmethod
    def from_dto(cls, row, bank_account_id: UUID, amount: Decimal, created_by_id: UUID):
        return cls(
            bank_account_id=bank_account_id,
            transaction_date=row.transaction_date,
            value_date=row.value_date,
            label=row.label or "",
            counterparty=row.counterparty,
            category=row.category,
            amount=amount,
            external_id=row.external_id,
            is_reconciled=False,
            created_by_id=created_by_id,
        )
