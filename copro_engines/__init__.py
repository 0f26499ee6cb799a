"""
Module: copro_engines
Responsibility:
    Pure calculation engines used by the business modules: prorata
    distribution, budget variance, bank-match candidate ranking and works
    fund thresholds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import
    copro_kernel.domain and copro_kernel.logging_config only.
    MUST NOT import copro_modules.

Invariants enforced:
    - Engines never read the clock; dates are passed in.
    - Decimal-only arithmetic for amounts and shares.
    - Every public engine call is traced via ``@traced_engine``
      (COPRO_ENGINE_TRACE records).
"""

from copro_engines.distribution import (
    allocate,
    lot_charge,
    percentages,
    share_percentage,
    split_instalments,
)
from copro_engines.matching import LedgerCandidate, MatchSuggestion, rank_candidates
from copro_engines.tracer import traced_engine
from copro_engines.variance import CategoryVariance, Trend, category_variance, month_variation
from copro_engines.works_fund import FundPosition, fund_position, required_minimum

__all__ = [
    "allocate",
    "lot_charge",
    "percentages",
    "share_percentage",
    "split_instalments",
    "LedgerCandidate",
    "MatchSuggestion",
    "rank_candidates",
    "traced_engine",
    "CategoryVariance",
    "Trend",
    "category_variance",
    "month_variation",
    "FundPosition",
    "fund_position",
    "required_minimum",
]
