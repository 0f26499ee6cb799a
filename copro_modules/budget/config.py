"""
Budget Configuration Schema.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from copro_config.schema import DEFAULT_CATEGORY_ACCOUNTS, AccountingSettings
from copro_kernel.logging_config import get_logger

logger = get_logger("modules.budget.config")


@dataclass
class BudgetConfig:
    """Configuration schema for the budget module."""

    currency: str = "EUR"
    variance_tolerance_percentage: Decimal = Decimal("5")
    call_for_funds_instalments: int = 4
    category_accounts: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_ACCOUNTS)
    )

    def __post_init__(self):
        if self.variance_tolerance_percentage < 0:
            raise ValueError("variance_tolerance_percentage cannot be negative")
        if self.call_for_funds_instalments < 1:
            raise ValueError("call_for_funds_instalments must be at least 1")
        logger.debug("budget_config_initialized", extra={
            "variance_tolerance_percentage": str(self.variance_tolerance_percentage),
            "call_for_funds_instalments": self.call_for_funds_instalments,
        })

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_settings(cls, settings: AccountingSettings) -> Self:
        return cls(
            currency=settings.currency,
            variance_tolerance_percentage=settings.variance_tolerance_percentage,
            category_accounts=dict(settings.category_accounts),
        )
