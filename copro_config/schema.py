"""
Configuration schema (``copro_config.schema``).

Frozen dataclasses describing the runtime settings.  Instances are built
by ``copro_config.loader`` and handed out by ``get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class BudgetCategory(str, Enum):
    """Cost categories of a co-ownership budget."""

    ENTRETIEN = "entretien"
    ENERGIE = "energie"
    ASSURANCES = "assurances"
    PERSONNEL = "personnel"
    HONORAIRES = "honoraires"
    EAU = "eau"
    TRAVAUX = "travaux"
    AUTRES = "autres"


# Account-code prefixes of the co-ownership chart feeding each category
DEFAULT_CATEGORY_ACCOUNTS: dict[str, tuple[str, ...]] = {
    BudgetCategory.ENTRETIEN.value: ("611", "614", "615"),
    BudgetCategory.ENERGIE.value: ("602", "603"),
    BudgetCategory.ASSURANCES.value: ("616",),
    BudgetCategory.PERSONNEL.value: ("64",),
    BudgetCategory.HONORAIRES.value: ("621", "622"),
    BudgetCategory.EAU.value: ("601",),
    BudgetCategory.TRAVAUX.value: ("67",),
    BudgetCategory.AUTRES.value: (),
}

# Statutory works fund floor, percent of the voted budget
STATUTORY_WORKS_FUND_MINIMUM = Decimal("5")


@dataclass(frozen=True)
class AccountingSettings:
    """
    Every tunable of the accounting engine.

    ``works_fund_legal_minimum`` is the statutory floor (5 %); it can be
    raised by configuration but a fund can never go below it.
    """

    database_url: str = "sqlite:///copro_accounting.db"
    currency: str = "EUR"
    page_size: int = 100
    works_fund_legal_minimum: Decimal = STATUTORY_WORKS_FUND_MINIMUM
    csv_delimiter: str = ";"
    csv_decimal_separator: str = ","
    match_window_days: int = 3
    variance_tolerance_percentage: Decimal = Decimal("5")
    category_accounts: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_ACCOUNTS)
    )
    log_level: str = "INFO"

    def prefixes_for(self, category: str) -> tuple[str, ...]:
        return self.category_accounts.get(category, ())
