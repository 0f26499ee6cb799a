"""
SQLAlchemy ORM persistence models for the Budget module.

Invariants enforced
-------------------
* One budget per (residence, fiscal year).
* ``total_budget`` is a cached sum of the lines.  It is only ever changed
  by an atomic ``UPDATE ... SET total_budget = total_budget + :delta``
  issued in the same transaction as the line insert/delete.
* ``version`` is the optimistic-lock counter for ORM writes to the header
  (status changes); a stale write raises ``StaleDataError``.
* ``budgeted_amount`` >= 0.
* ``distribution_key_id`` references ``distribution_keys``; deleting a
  referenced key is refused by ``DistributionService``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from copro_kernel.db.base import TrackedBase, UUIDString


class BudgetModel(TrackedBase):
    """Maps to the ``Budget`` DTO."""

    __tablename__ = "copro_budgets"

    __table_args__ = (
        UniqueConstraint("residence_id", "fiscal_year", name="uq_budget_residence_year"),
        CheckConstraint("total_budget >= 0", name="chk_budget_total_non_negative"),
        Index("idx_budget_status", "status"),
    )

    residence_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    total_budget: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    voted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assembly_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["BudgetLineModel"]] = relationship(
        "BudgetLineModel",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetLineModel.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from copro_modules.budget.models import Budget, BudgetStatus

        return Budget(
            id=self.id,
            residence_id=self.residence_id,
            fiscal_year=self.fiscal_year,
            status=BudgetStatus(self.status),
            total_budget=self.total_budget,
            voted_at=self.voted_at,
            assembly_id=self.assembly_id,
        )

    def __repr__(self) -> str:
        return f"<BudgetModel FY{self.fiscal_year} [{self.status}] total={self.total_budget}>"


class BudgetLineModel(TrackedBase):
    """Maps to the ``BudgetLine`` DTO."""

    __tablename__ = "copro_budget_lines"

    __table_args__ = (
        CheckConstraint("budgeted_amount >= 0", name="chk_budget_line_non_negative"),
        Index("idx_budget_line_budget", "budget_id"),
        Index("idx_budget_line_key", "distribution_key_id"),
    )

    budget_id: Mapped[UUID] = mapped_column(
        ForeignKey("copro_budgets.id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    budgeted_amount: Mapped[Decimal] = mapped_column(nullable=False)
    actual_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    distribution_key_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("distribution_keys.id"), nullable=True
    )
    account_prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)

    budget: Mapped[BudgetModel] = relationship(BudgetModel, back_populates="lines")

    def to_dto(self):
        from copro_modules.budget.models import BudgetCategory, BudgetLine

        return BudgetLine(
            id=self.id,
            budget_id=self.budget_id,
            label=self.label,
            category=BudgetCategory(self.category),
            budgeted_amount=self.budgeted_amount,
            actual_amount=self.actual_amount,
            distribution_key_id=self.distribution_key_id,
            account_prefix=self.account_prefix,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "BudgetLineModel":
        return cls(
            id=dto.id,
            budget_id=dto.budget_id,
            label=dto.label,
            category=dto.category.value,
            budgeted_amount=dto.budgeted_amount,
            actual_amount=dto.actual_amount,
            distribution_key_id=dto.distribution_key_id,
            account_prefix=dto.account_prefix,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<BudgetLineModel {self.category} {self.label} {self.budgeted_amount}>"
