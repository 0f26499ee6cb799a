"""
SQLAlchemy ORM persistence model for the works fund.

One row per residence.  ``balance`` only grows through the atomic
increment issued by ``WorksFundService.contribute``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from copro_kernel.db.base import TrackedBase, UUIDString


class WorksFundModel(TrackedBase):
    """Maps to the ``WorksFund`` DTO."""

    __tablename__ = "copro_works_fund"

    __table_args__ = (
        UniqueConstraint("residence_id", name="uq_works_fund_residence"),
        CheckConstraint("minimum_percentage >= 0", name="ck_works_fund_percentage"),
    )

    residence_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    minimum_percentage: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("5"))
    last_contribution_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self):
        from copro_modules.works_fund.models import WorksFund

        return WorksFund(
            id=self.id,
            residence_id=self.residence_id,
            balance=self.balance,
            minimum_percentage=self.minimum_percentage,
            last_contribution_date=self.last_contribution_date,
        )

    def __repr__(self) -> str:
        return f"<WorksFundModel {self.residence_id} balance={self.balance}>"
