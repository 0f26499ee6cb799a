"""
Regularization Domain Models (``copro_modules.regularization.models``).

Responsibility
--------------
Frozen dataclasses for the year-end comparison between the charge
provisions a tenant paid and the charges actually incurred.

Invariants enforced
-------------------
* ``balance = provisions_total - actual_charges``, always derived.
* ``balance >= 0`` means a refund is owed to the tenant; ``balance < 0``
  means the tenant owes the difference.  Notices depend on this sign.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class RegularizationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    PAID = "paid"


class BalanceDirection(str, Enum):
    REFUND = "refund"  # owed to the tenant
    DUE = "due"  # owed by the tenant


def direction_of(balance: Decimal) -> BalanceDirection:
    return BalanceDirection.REFUND if balance >= 0 else BalanceDirection.DUE


@dataclass(frozen=True)
class ChargeLine:
    """One incurred charge making up a regularization's actual charges."""

    label: str
    amount: Decimal
    category: str | None = None
    distribution_key_id: UUID | None = None


@dataclass(frozen=True)
class Regularization:
    id: UUID
    residence_id: UUID
    lease_id: UUID
    period_start: date
    period_end: date
    provisions_total: Decimal
    actual_charges: Decimal
    balance: Decimal
    status: RegularizationStatus
    lot_id: UUID | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None

    @property
    def direction(self) -> BalanceDirection:
        return direction_of(self.balance)

    @property
    def amount(self) -> Decimal:
        """The absolute amount to refund or to collect."""
        return abs(self.balance)


@dataclass(frozen=True)
class RegularizationNotice:
    """What the notification collaborator needs to tell the tenant."""

    regularization_id: UUID
    lease_id: UUID
    lot_label: str
    period_start: date
    period_end: date
    provisions_total: Decimal
    actual_charges: Decimal
    balance: Decimal
    amount: Decimal
    direction: BalanceDirection
    sent_at: datetime | None
    charges: tuple[ChargeLine, ...] = ()


@dataclass(frozen=True)
class SendAllResult:
    sent: tuple[Regularization, ...]
    skipped: tuple[UUID, ...]


@dataclass(frozen=True)
class RegularizationSummary:
    count: int
    provisions_total: Decimal
    actual_charges: Decimal
    balance: Decimal
    pending: int
    sent: int
    paid: int
