"""
Works Fund Domain Models (``copro_modules.works_fund.models``).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class WorksFund:
    id: UUID
    residence_id: UUID
    balance: Decimal
    minimum_percentage: Decimal
    last_contribution_date: date | None = None


@dataclass(frozen=True)
class WorksFundStatus:
    """A fund measured against the latest voted budget."""

    fund_id: UUID
    residence_id: UUID
    balance: Decimal
    minimum_percentage: Decimal
    budget_total: Decimal
    required_minimum: Decimal
    progress: Decimal
    shortfall: Decimal
    last_contribution_date: date | None = None

    @property
    def is_compliant(self) -> bool:
        return self.shortfall == Decimal("0")

    @property
    def progress_percent(self) -> Decimal:
        return self.progress * Decimal("100")
