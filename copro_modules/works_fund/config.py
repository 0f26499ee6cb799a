"""
Works Fund Configuration Schema.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from copro_config.schema import STATUTORY_WORKS_FUND_MINIMUM, AccountingSettings


@dataclass
class WorksFundConfig:
    """Legal floor for the fund's minimum percentage of the voted budget."""

    legal_minimum_percentage: Decimal = STATUTORY_WORKS_FUND_MINIMUM

    def __post_init__(self):
        if self.legal_minimum_percentage < STATUTORY_WORKS_FUND_MINIMUM:
            raise ValueError(
                f"legal_minimum_percentage cannot be below {STATUTORY_WORKS_FUND_MINIMUM}"
            )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_settings(cls, settings: AccountingSettings) -> Self:
        return cls(legal_minimum_percentage=settings.works_fund_legal_minimum)
