"""
Bank Reconciliation Configuration Schema.
"""

from dataclasses import dataclass
from typing import Self

from copro_config.schema import AccountingSettings


@dataclass
class BankConfig:
    """Configuration schema for the bank module."""

    currency: str = "EUR"
    match_window_days: int = 3
    page_size: int = 100

    def __post_init__(self):
        if self.match_window_days < 0:
            raise ValueError("match_window_days cannot be negative")
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_settings(cls, settings: AccountingSettings) -> Self:
        return cls(
            currency=settings.currency,
            match_window_days=settings.match_window_days,
            page_size=settings.page_size,
        )
