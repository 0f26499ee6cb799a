"""
Distribution Key Domain Models (``copro_modules.distribution.models``).

Frozen dataclasses for distribution keys (tantièmes) and lot shares.
Percentages are derived on every read and never stored.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class DistributionKey:
    """A residence-scoped rule set mapping lots to prorata shares."""

    id: UUID
    residence_id: UUID
    code: str
    name: str
    description: str | None = None


@dataclass(frozen=True)
class LotShare:
    """Shares of one lot under one key, with its computed fraction."""

    key_id: UUID
    lot_id: UUID
    shares: Decimal
    percentage: Decimal = Decimal("0")

    @property
    def percent(self) -> Decimal:
        """The fraction expressed out of 100."""
        return self.percentage * Decimal("100")


@dataclass(frozen=True)
class KeyUsage:
    """Records still pointing at a key; any count > 0 blocks deletion."""

    key_id: UUID
    budget_lines: int
    regularization_lines: int

    @property
    def in_use(self) -> bool:
        return bool(self.budget_lines or self.regularization_lines)
