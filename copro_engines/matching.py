"""
copro_engines.matching -- candidate scoring for manual bank reconciliation.

Responsibility:
    Rank ledger lines that could correspond to a bank movement: same
    absolute amount, date within a window, ordered by date distance, then
    by whether the ledger side agrees with the direction of the movement,
    then by label similarity.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Advisory only.  The engine never pairs anything; it returns ranked
      suggestions for an operator to confirm.
    - Deterministic: ties are broken by line id.

Failure modes:
    - ValueError on a negative window.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from difflib import SequenceMatcher
from uuid import UUID

from copro_engines.tracer import traced_engine

_AMOUNT_TOLERANCE = Decimal("0.005")


@dataclass(frozen=True)
class LedgerCandidate:
    """A ledger line considered for a bank movement."""

    line_id: UUID
    line_date: date
    debit: Decimal
    credit: Decimal
    label: str
    account_code: str = ""


@dataclass(frozen=True)
class MatchSuggestion:
    line_id: UUID
    line_date: date
    amount: Decimal
    label: str
    account_code: str
    date_distance_days: int
    direction_matches: bool
    label_similarity: Decimal


def label_similarity(a: str, b: str) -> Decimal:
    """Similarity ratio in [0, 1] of two labels, case-insensitive, 2 places."""
    ratio = SequenceMatcher(None, (a or "").lower(), (b or "").lower()).ratio()
    return Decimal(str(round(ratio, 2)))


@traced_engine(
    "matching.bank_candidates", "1.0",
    fingerprint_fields=("amount", "value_date", "window_days"),
)
def rank_candidates(
    amount: Decimal,
    value_date: date,
    label: str,
    candidates: Sequence[LedgerCandidate],
    window_days: int = 3,
) -> list[MatchSuggestion]:
    """
    Suggestions for a bank movement of signed ``amount`` on ``value_date``.

    Incoming funds (amount > 0) correspond to a debit on the bank account
    in the ledger; outgoing funds to a credit.  Lines on the other side are
    still suggested, ranked after direction-consistent ones.
    """
    if window_days < 0:
        raise ValueError(f"window_days must be >= 0, got {window_days}")

    target = abs(amount)
    incoming = amount > 0
    suggestions = []
    for candidate in candidates:
        distance = abs((candidate.line_date - value_date).days)
        if distance > window_days:
            continue
        line_amount = candidate.debit if candidate.debit else candidate.credit
        if abs(line_amount - target) > _AMOUNT_TOLERANCE:
            continue
        suggestions.append(MatchSuggestion(
            line_id=candidate.line_id,
            line_date=candidate.line_date,
            amount=line_amount,
            label=candidate.label,
            account_code=candidate.account_code,
            date_distance_days=distance,
            direction_matches=bool(candidate.debit) == incoming,
            label_similarity=label_similarity(label, candidate.label),
        ))

    suggestions.sort(key=lambda s: (
        s.date_distance_days,
        not s.direction_matches,
        -s.label_similarity,
        str(s.line_id),
    ))
    return suggestions
