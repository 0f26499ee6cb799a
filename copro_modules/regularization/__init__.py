"""
Charge Regularization module (``copro_modules.regularization``).

Per-lease year-end comparison of charge provisions collected against the
charges actually incurred, and the notice lifecycle that follows.
"""

from copro_modules.regularization.models import (
    BalanceDirection,
    ChargeLine,
    Regularization,
    RegularizationNotice,
    RegularizationStatus,
    RegularizationSummary,
    SendAllResult,
)

__all__ = [
    "BalanceDirection",
    "ChargeLine",
    "Regularization",
    "RegularizationNotice",
    "RegularizationStatus",
    "RegularizationSummary",
    "SendAllResult",
]
