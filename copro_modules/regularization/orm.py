"""
SQLAlchemy ORM persistence models for charge regularizations.

Invariants enforced
-------------------
* One regularization per (lease, period_start, period_end).
* ``balance`` is written only by the service, as provisions - actual.
* ``version`` guards concurrent status changes (``version_id_col``).
* Charge lines may reference a distribution key; such keys cannot be
  deleted (``DistributionService.delete_key``).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from copro_kernel.db.base import TrackedBase, UUIDString


class RegularizationModel(TrackedBase):
    """Maps to the ``Regularization`` DTO."""

    __tablename__ = "charges_regularizations"

    __table_args__ = (
        UniqueConstraint(
            "lease_id", "period_start", "period_end", name="uq_regularization_lease_period"
        ),
        CheckConstraint("period_end >= period_start", name="chk_regularization_period"),
        CheckConstraint("provisions_total >= 0", name="chk_regularization_provisions"),
        CheckConstraint("actual_charges >= 0", name="chk_regularization_charges"),
        Index("idx_regularization_residence", "residence_id"),
        Index("idx_regularization_status", "status"),
    )

    residence_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    lease_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    lot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    provisions_total: Mapped[Decimal] = mapped_column(nullable=False)
    actual_charges: Mapped[Decimal] = mapped_column(nullable=False)
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    charge_lines: Mapped[list["RegularizationChargeLineModel"]] = relationship(
        "RegularizationChargeLineModel",
        back_populates="regularization",
        cascade="all, delete-orphan",
        order_by="RegularizationChargeLineModel.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from copro_modules.regularization.models import Regularization, RegularizationStatus

        return Regularization(
            id=self.id,
            residence_id=self.residence_id,
            lease_id=self.lease_id,
            lot_id=self.lot_id,
            period_start=self.period_start,
            period_end=self.period_end,
            provisions_total=self.provisions_total,
            actual_charges=self.actual_charges,
            balance=self.balance,
            status=RegularizationStatus(self.status),
            sent_at=self.sent_at,
            paid_at=self.paid_at,
        )

    def __repr__(self) -> str:
        return (
            f"<RegularizationModel lease={self.lease_id} "
            f"{self.period_start}..{self.period_end} [{self.status}]>"
        )


class RegularizationChargeLineModel(TrackedBase):
    """Maps to the ``ChargeLine`` DTO."""

    __tablename__ = "charges_regularization_lines"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_regularization_line_amount"),
        Index("idx_regularization_line_key", "distribution_key_id"),
    )

    regularization_id: Mapped[UUID] = mapped_column(
        ForeignKey("charges_regularizations.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(30), nullable=True)
    distribution_key_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("distribution_keys.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    regularization: Mapped[RegularizationModel] = relationship(
        RegularizationModel, back_populates="charge_lines"
    )

    def to_dto(self):
        from copro_modules.regularization.models import ChargeLine

        return ChargeLine(
            label=self.label,
            amount=self.amount,
            category=self.category,
            distribution_key_id=self.distribution_key_id,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by_id: UUID) -> "RegularizationChargeLineModel":
        return cls(
            position=position,
            label=dto.label,
            category=dto.category,
            distribution_key_id=dto.distribution_key_id,
            amount=dto.amount,
            created_by_id=created_by_id,
        )
