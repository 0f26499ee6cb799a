"""
Tests for bank-match candidate ranking.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from copro_engines.matching import LedgerCandidate, label_similarity, rank_candidates


def _candidate(n, day, debit="0", credit="0", label=""):
    return LedgerCandidate(
        line_id=UUID(int=n),
        line_date=date(2026, 3, day),
        debit=Decimal(debit),
        credit=Decimal(credit),
        label=label,
        account_code="512",
    )


class TestRankCandidates:

    def test_closest_date_first(self):
        far = _candidate(1, 13, debit="250.00")
        near = _candidate(2, 11, debit="250.00")
        ranked = rank_candidates(Decimal("250.00"), date(2026, 3, 10), "", [far, near])
        assert [s.line_id for s in ranked] == [near.line_id, far.line_id]
        assert ranked[0].date_distance_days == 1

    def test_direction_breaks_date_ties(self):
        credit_side = _candidate(1, 10, credit="250.00")
        debit_side = _candidate(2, 10, debit="250.00")
        ranked = rank_candidates(Decimal("250.00"), date(2026, 3, 10), "", [credit_side, debit_side])
        assert ranked[0].line_id == debit_side.line_id
        assert ranked[0].direction_matches
        assert not ranked[1].direction_matches

    def test_outgoing_prefers_credit(self):
        credit_side = _candidate(1, 10, credit="80.00")
        debit_side = _candidate(2, 10, debit="80.00")
        ranked = rank_candidates(Decimal("-80.00"), date(2026, 3, 10), "", [debit_side, credit_side])
        assert ranked[0].line_id == credit_side.line_id

    def test_label_similarity_breaks_remaining_ties(self):
        other = _candidate(1, 10, debit="50.00", label="Insurance premium")
        match = _candidate(2, 10, debit="50.00", label="Payment Dupont lot 12")
        ranked = rank_candidates(Decimal("50.00"), date(2026, 3, 10), "VIR DUPONT LOT 12", [other, match])
        assert ranked[0].line_id == match.line_id

    def test_amount_and_window_filter(self):
        wrong_amount = _candidate(1, 10, debit="50.01")
        too_far = _candidate(2, 20, debit="50.00")
        assert rank_candidates(Decimal("50.00"), date(2026, 3, 10), "", [wrong_amount, too_far]) == []

    def test_negative_window_rejected(self):
        with pytest.raises(ValueError):
            rank_candidates(Decimal("1"), date(2026, 3, 10), "", [], window_days=-1)


def test_label_similarity_case_insensitive():
    assert label_similarity("EDF Invoice", "edf invoice") == Decimal("1")
    assert label_similarity("", "") == Decimal("1")
