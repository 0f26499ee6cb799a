"""
SQLAlchemy ORM persistence models for distribution keys.

Invariants enforced
-------------------
* ``code`` is upper-case and unique per residence.
* One share row per (key, lot); ``shares`` >= 0.
* Deleting a key deletes its share rows.  Whether a key may be deleted at
  all is decided by ``DistributionService.delete_key``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from copro_kernel.db.base import TrackedBase, UUIDString


class DistributionKeyModel(TrackedBase):
    """Maps to the ``DistributionKey`` DTO."""

    __tablename__ = "distribution_keys"

    __table_args__ = (
        UniqueConstraint("residence_id", "code", name="uq_distribution_key_code"),
        Index("idx_distribution_key_residence", "residence_id"),
    )

    residence_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    shares: Mapped[list["LotShareModel"]] = relationship(
        "LotShareModel",
        back_populates="key",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dto(self):
        from copro_modules.distribution.models import DistributionKey

        return DistributionKey(
            id=self.id,
            residence_id=self.residence_id,
            code=self.code,
            name=self.name,
            description=self.description,
        )

    def __repr__(self) -> str:
        return f"<DistributionKeyModel {self.code}>"


class LotShareModel(TrackedBase):
    """Maps to the ``LotShare`` DTO (percentage filled in by the service)."""

    __tablename__ = "lot_distribution_shares"

    __table_args__ = (
        UniqueConstraint("key_id", "lot_id", name="uq_lot_share_key_lot"),
        CheckConstraint("shares >= 0", name="chk_lot_share_non_negative"),
        Index("idx_lot_share_lot", "lot_id"),
    )

    key_id: Mapped[UUID] = mapped_column(
        ForeignKey("distribution_keys.id", ondelete="CASCADE"), nullable=False
    )
    lot_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    shares: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    key: Mapped[DistributionKeyModel] = relationship(
        DistributionKeyModel, back_populates="shares"
    )

    def to_dto(self, percentage: Decimal = Decimal("0")):
        from copro_modules.distribution.models import LotShare

        return LotShare(
            key_id=self.key_id,
            lot_id=self.lot_id,
            shares=self.shares,
            percentage=percentage,
        )

    def __repr__(self) -> str:
        return f"<LotShareModel key={self.key_id} lot={self.lot_id} shares={self.shares}>"
