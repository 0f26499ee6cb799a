"""
Module: copro_engines.distribution
Responsibility:
    Prorata arithmetic for distribution keys (tantièmes): a lot's
    percentage under a key, the split of a shared cost across lots, and
    equal instalments of a yearly amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import copro_kernel/domain/values and the tracer.

Invariants enforced:
    - percentage = shares / total shares, and exactly 0 when the total is 0.
      Percentages are computed on every call and never cached.
    - For a key whose total is > 0, percentages sum to 1 (within Decimal
      context precision).
    - allocate(): largest-remainder apportionment.  Every part is rounded
      down to the cent, then the leftover cents go one each to the lots with
      the largest remainders (ties: larger share, then lowest lot id).  Parts
      sum exactly to the amount and none has the opposite sign.
    - split_instalments(): instalments are rounded down and the last one
      takes the remainder, so it is never smaller than the others.
    - A key with zero total shares allocates nothing (empty mapping).

Failure modes:
    - ValueError on negative shares or non-positive instalment count.

Usage:
    from copro_engines.distribution import allocate, percentages
    from copro_kernel.domain.values import Money

    parts = allocate(Money.of("1000.00"), {lot_a: Decimal("100"), lot_b: Decimal("300")})
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping, Sequence
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from copro_engines.tracer import traced_engine
from copro_kernel.domain.values import Money
from copro_kernel.logging_config import get_logger

logger = get_logger("engines.distribution")

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


def _check_shares(shares: Mapping[Hashable, Decimal]) -> Decimal:
    total = _ZERO
    for lot_id, value in shares.items():
        if value < _ZERO:
            raise ValueError(f"Negative shares for lot {lot_id}: {value}")
        total += value
    return total


def share_percentage(shares: Decimal, total_shares: Decimal) -> Decimal:
    """shares / total_shares as a fraction in [0, 1]; 0 when total_shares is 0."""
    if total_shares == _ZERO:
        return _ZERO
    return Decimal(shares) / Decimal(total_shares)


@traced_engine("distribution.percentages", "1.0", fingerprint_fields=("shares",))
def percentages(shares: Mapping[Hashable, Decimal]) -> dict[Hashable, Decimal]:
    """Every lot's fraction of the key's total shares."""
    total = _check_shares(shares)
    return {lot_id: share_percentage(value, total) for lot_id, value in shares.items()}


def _leftover_order(
    shares: Mapping[Hashable, Decimal], remainders: Mapping[Hashable, Decimal],
) -> list[Hashable]:
    eligible = [lot_id for lot_id, value in shares.items() if value > _ZERO]
    return sorted(
        eligible,
        key=lambda lot_id: (-remainders[lot_id], -shares[lot_id], str(lot_id)),
    )


@traced_engine("distribution.allocate", "1.0", fingerprint_fields=("amount", "shares"))
def allocate(amount: Money, shares: Mapping[Hashable, Decimal]) -> dict[Hashable, Money]:
    """
    Split ``amount`` across lots in proportion to their shares.

    Returns lot -> part.  Lots with zero shares get a zero part.  Parts
    are rounded down and the leftover cents go to the largest remainders.
    """
    total = _check_shares(shares)
    if total == _ZERO:
        return {}

    sign = -1 if amount.amount < _ZERO else 1
    whole = abs(amount.amount).quantize(_CENT, rounding=ROUND_HALF_UP)

    floors: dict[Hashable, Decimal] = {}
    remainders: dict[Hashable, Decimal] = {}
    for lot_id, value in shares.items():
        exact = whole * value / total
        floors[lot_id] = exact.quantize(_CENT, rounding=ROUND_DOWN)
        remainders[lot_id] = exact - floors[lot_id]

    leftover = int((whole - sum(floors.values(), _ZERO)) / _CENT)
    for lot_id in _leftover_order(shares, remainders)[:leftover]:
        floors[lot_id] += _CENT

    parts = {
        lot_id: Money.of(sign * part, amount.currency) for lot_id, part in floors.items()
    }

    logger.debug("allocation_completed", extra={
        "source_amount": str(amount.amount),
        "lot_count": len(parts),
        "leftover_cents": leftover,
    })
    return parts


def lot_charge(
    lot_id: Hashable,
    allocations: Sequence[tuple[Mapping[Hashable, Decimal], Money]],
    currency: str = "EUR",
) -> Money:
    """
    A lot's total prorated part of several shared costs.

    ``allocations`` holds (shares of the key, amount spread with that key)
    pairs.  A lot absent from a key contributes nothing for that cost.
    """
    total = Money.zero(currency)
    for shares, amount in allocations:
        part = allocate(amount, shares).get(lot_id)
        if part is not None:
            total = total + part
    return total


def split_instalments(amount: Money, count: int) -> list[Money]:
    """``count`` equal instalments; the last one absorbs the rounding remainder."""
    if count < 1:
        raise ValueError(f"Instalment count must be >= 1, got {count}")
    base = (amount.amount / count).quantize(_CENT, rounding=ROUND_DOWN)
    parts = [Money.of(base, amount.currency) for _ in range(count - 1)]
    parts.append(Money.of(amount.amount - base * (count - 1), amount.currency))
    return parts
