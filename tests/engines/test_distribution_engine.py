"""
Tests for the prorata distribution engine.

Covers:
- share_percentage / percentages, including the zero-total key
- allocate: exact sum, rounding target, zero-share lots, empty key
- lot_charge over several keys
- split_instalments
"""

from decimal import Decimal

import pytest

from copro_engines.distribution import (
    allocate,
    lot_charge,
    percentages,
    share_percentage,
    split_instalments,
)
from copro_kernel.domain.values import Money


class TestPercentages:

    def test_quarter_and_three_quarters(self):
        result = percentages({"L1": Decimal("100"), "L2": Decimal("300")})
        assert result == {"L1": Decimal("0.25"), "L2": Decimal("0.75")}

    def test_zero_total_gives_zero_everywhere(self):
        result = percentages({"L1": Decimal("0"), "L2": Decimal("0")})
        assert result == {"L1": Decimal("0"), "L2": Decimal("0")}

    def test_share_percentage_zero_total(self):
        assert share_percentage(Decimal("10"), Decimal("0")) == Decimal("0")

    def test_negative_shares_rejected(self):
        with pytest.raises(ValueError):
            percentages({"L1": Decimal("-1")})

    def test_thirds_sum_to_one(self):
        result = percentages({"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")})
        assert abs(sum(result.values()) - Decimal("1")) < Decimal("1e-20")


class TestAllocate:

    def test_parts_sum_to_amount(self):
        parts = allocate(Money.of("100.00"), {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")})
        assert sum(p.amount for p in parts.values()) == Decimal("100.00")

    def test_exact_parts_need_no_leftover(self):
        parts = allocate(Money.of("100.00"), {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("2")})
        assert parts["a"].amount == Decimal("25.00")
        assert parts["c"].amount == Decimal("50.00")

    def test_tie_goes_to_lowest_id(self):
        parts = allocate(Money.of("10.00"), {"b": Decimal("1"), "a": Decimal("1"), "c": Decimal("1")})
        assert parts["a"].amount == Decimal("3.34")
        assert parts["b"].amount == Decimal("3.33")
        assert parts["c"].amount == Decimal("3.33")

    def test_small_amount_over_many_lots(self):
        shares = {f"lot{index:03d}": Decimal("1") for index in range(200)}
        parts = allocate(Money.of("1.50"), shares)
        amounts = [p.amount for p in parts.values()]
        assert sum(amounts) == Decimal("1.50")
        assert min(amounts) == Decimal("0.00")
        assert max(amounts) == Decimal("0.01")
        assert amounts.count(Decimal("0.01")) == 150

    def test_largest_remainder_wins_leftover(self):
        parts = allocate(Money.of("1.00"), {"a": Decimal("1"), "b": Decimal("2"), "c": Decimal("3")})
        assert parts["a"].amount == Decimal("0.17")
        assert parts["b"].amount == Decimal("0.33")
        assert parts["c"].amount == Decimal("0.50")

    def test_negative_amount_keeps_sign(self):
        parts = allocate(Money.of("-10.00"), {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")})
        assert sum(p.amount for p in parts.values()) == Decimal("-10.00")
        assert all(p.amount < 0 for p in parts.values())

    def test_zero_share_lot_gets_nothing(self):
        parts = allocate(Money.of("90.00"), {"a": Decimal("0"), "b": Decimal("3")})
        assert parts["a"].amount == Decimal("0.00")
        assert parts["b"].amount == Decimal("90.00")

    def test_empty_key_allocates_nothing(self):
        assert allocate(Money.of("90.00"), {"a": Decimal("0")}) == {}
        assert allocate(Money.of("90.00"), {}) == {}

    def test_currency_preserved(self):
        parts = allocate(Money.of("10", "EUR"), {"a": Decimal("1")})
        assert parts["a"].currency == "EUR"

    def test_traced(self, captured_logs):
        allocate(Money.of("10"), {"a": Decimal("1")})
        traces = [r for r in captured_logs() if r.get("trace_type") == "COPRO_ENGINE_TRACE"]
        assert any(r["engine_name"] == "distribution.allocate" for r in traces)


class TestLotCharge:

    def test_sum_over_keys(self):
        general = {"L1": Decimal("100"), "L2": Decimal("300")}
        elevator = {"L2": Decimal("1")}
        total = lot_charge("L2", [(general, Money.of("1000")), (elevator, Money.of("200"))])
        assert total.amount == Decimal("950.00")

    def test_lot_absent_from_key(self):
        assert lot_charge("L9", [({"L1": Decimal("1")}, Money.of("10"))]).amount == Decimal("0")


class TestInstalments:

    def test_last_absorbs_remainder(self):
        parts = split_instalments(Money.of("100.00"), 3)
        assert [p.amount for p in parts] == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    def test_small_amount_never_negative(self):
        parts = split_instalments(Money.of("0.10"), 12)
        assert sum(p.amount for p in parts) == Decimal("0.10")
        assert all(p.amount >= 0 for p in parts)
        assert parts[-1].amount == Decimal("0.10")

    def test_single_instalment(self):
        assert split_instalments(Money.of("12.34"), 1)[0].amount == Decimal("12.34")

    def test_zero_count_rejected(self):
        with pytest.raises(ValueError):
            split_instalments(Money.of("1"), 0)
