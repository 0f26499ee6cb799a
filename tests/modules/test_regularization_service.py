"""
Tests for RegularizationService -- tenant charge settlements.

Covers:
- balance = provisions_total - actual_charges, sign gives the direction
- pending -> sent -> paid with timestamps from the clock
- send_all: pending only, unknown ids abort the call
- Notices and residence summaries
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from copro_kernel.domain.references import StaticDirectory
from copro_kernel.exceptions import (
    DistributionKeyNotFoundError,
    DuplicateRegularizationError,
    IllegalTransitionError,
    InvalidAmountError,
    InvalidPeriodError,
    RegularizationNotFoundError,
)
from copro_modules.regularization.models import (
    BalanceDirection,
    ChargeLine,
    RegularizationStatus,
)
from copro_modules.regularization.service import RegularizationService

YEAR_START = date(2025, 1, 1)
YEAR_END = date(2025, 12, 31)


@pytest.fixture
def lease_id():
    return uuid4()


@pytest.fixture
def due(regularization_service, scope, lease_id):
    """Provisions 1200, actual 1500: the tenant owes 300."""
    return regularization_service.create(scope, lease_id, YEAR_START, YEAR_END, "1200", "1500")


class TestCreate:

    def test_tenant_owes_difference(self, due):
        assert due.balance == Decimal("-300")
        assert due.direction == BalanceDirection.DUE
        assert due.amount == Decimal("300")
        assert due.status == RegularizationStatus.PENDING
        assert due.sent_at is None

    def test_refund_when_provisions_exceed_charges(self, regularization_service, scope):
        reg = regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 1500, 1200)
        assert reg.balance == Decimal("300")
        assert reg.direction == BalanceDirection.REFUND

    def test_zero_balance_is_a_refund_of_nothing(self, regularization_service, scope):
        reg = regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 800, 800)
        assert reg.amount == Decimal("0")
        assert reg.direction == BalanceDirection.REFUND

    def test_negative_provisions_rejected(self, regularization_service, scope):
        with pytest.raises(InvalidAmountError):
            regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, -1, 10)

    def test_inverted_period_rejected(self, regularization_service, scope):
        with pytest.raises(InvalidPeriodError):
            regularization_service.create(scope, uuid4(), YEAR_END, YEAR_START, 10, 10)

    def test_same_lease_and_period_rejected(self, regularization_service, scope, lease_id, due):
        with pytest.raises(DuplicateRegularizationError):
            regularization_service.create(scope, lease_id, YEAR_START, YEAR_END, 1, 1)

    def test_lot_resolved_from_lease(self, session, deterministic_clock, scope, lot_factory):
        lot_id = lot_factory("12")
        lease = uuid4()
        service = RegularizationService(
            session, clock=deterministic_clock,
            directory=StaticDirectory(lots=lot_factory.lots, leases={lease: lot_id}),
        )
        reg = service.create(scope, lease, YEAR_START, YEAR_END, 100, 50)
        assert reg.lot_id == lot_id
        assert service.notice(scope, reg.id).lot_label == "12"

    def test_creation_logged(self, regularization_service, scope, captured_logs):
        regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 100, 150)
        record = next(r for r in captured_logs() if r["message"] == "regularization_created")
        assert record["balance"] == "-50"
        assert record["direction"] == "due"


class TestBreakdown:

    def test_actual_charges_summed_from_lines(
        self, regularization_service, scope, general_key,
    ):
        key, _, _ = general_key
        reg = regularization_service.create_from_breakdown(
            scope, uuid4(), YEAR_START, YEAR_END, "1200",
            [
                ChargeLine("Eau froide", Decimal("400.00"), category="eau"),
                ChargeLine("Menage", Decimal("1100.00"), distribution_key_id=key.id),
            ],
        )
        assert reg.actual_charges == Decimal("1500.00")
        assert reg.balance == Decimal("-300.00")
        labels = [c.label for c in regularization_service.charge_lines(scope, reg.id)]
        assert labels == ["Eau froide", "Menage"]

    def test_foreign_key_rejected(
        self, regularization_service, distribution_service, scope, other_scope,
    ):
        foreign = distribution_service.create_key(other_scope, "GEN", "General")
        with pytest.raises(DistributionKeyNotFoundError):
            regularization_service.create_from_breakdown(
                scope, uuid4(), YEAR_START, YEAR_END, 100,
                [ChargeLine("Menage", Decimal("10"), distribution_key_id=foreign.id)],
            )


class TestLifecycle:

    def test_send_stamps_sent_at(self, regularization_service, scope, due, deterministic_clock):
        sent = regularization_service.send(scope, due.id)
        assert sent.status == RegularizationStatus.SENT
        assert sent.sent_at == deterministic_clock.now()

    def test_paid_after_sent(self, regularization_service, scope, due):
        regularization_service.send(scope, due.id)
        paid = regularization_service.mark_paid(scope, due.id)
        assert paid.status == RegularizationStatus.PAID
        assert paid.paid_at is not None

    def test_paid_before_sent_rejected(self, regularization_service, scope, due):
        with pytest.raises(IllegalTransitionError):
            regularization_service.mark_paid(scope, due.id)

    def test_send_twice_rejected(self, regularization_service, scope, due):
        regularization_service.send(scope, due.id)
        with pytest.raises(IllegalTransitionError):
            regularization_service.send(scope, due.id)

    def test_other_residence_not_found(self, regularization_service, other_scope, due):
        with pytest.raises(RegularizationNotFoundError):
            regularization_service.send(other_scope, due.id)


class TestSendAll:

    def test_sends_every_pending(self, regularization_service, scope, due):
        other = regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 10, 5)
        regularization_service.send(scope, other.id)
        third = regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 10, 20)

        result = regularization_service.send_all(scope)
        assert {reg.id for reg in result.sent} == {due.id, third.id}
        assert result.skipped == ()
        assert regularization_service.list_regularizations(scope, status="pending") == []

    def test_selected_ids_skip_non_pending(self, regularization_service, scope, due):
        other = regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 10, 5)
        regularization_service.send(scope, other.id)
        result = regularization_service.send_all(scope, [due.id, other.id])
        assert [reg.id for reg in result.sent] == [due.id]
        assert result.skipped == (other.id,)

    def test_unknown_id_aborts(self, regularization_service, scope, due):
        with pytest.raises(RegularizationNotFoundError):
            regularization_service.send_all(scope, [due.id, uuid4()])
        assert regularization_service.get(scope, due.id).status == RegularizationStatus.PENDING


class TestReads:

    def test_notice(self, regularization_service, scope, due):
        regularization_service.send(scope, due.id)
        notice = regularization_service.notice(scope, due.id)
        assert notice.amount == Decimal("300.00")
        assert notice.direction == BalanceDirection.DUE
        assert notice.lot_label == ""
        assert notice.sent_at is not None

    def test_list_by_lease(self, regularization_service, scope, lease_id, due):
        regularization_service.create(scope, lease_id, date(2024, 1, 1), date(2024, 12, 31), 10, 10)
        regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 10, 10)
        rows = regularization_service.list_regularizations(scope, lease_id=lease_id)
        assert [r.period_end for r in rows] == [YEAR_END, date(2024, 12, 31)]

    def test_summary(self, regularization_service, scope, due):
        regularization_service.create(scope, uuid4(), YEAR_START, YEAR_END, 500, 400)
        regularization_service.create(scope, uuid4(), date(2024, 1, 1), date(2024, 12, 31), 50, 0)
        regularization_service.send(scope, due.id)

        summary = regularization_service.summary(scope, year=2025)
        assert summary.count == 2
        assert summary.provisions_total == Decimal("1700.00")
        assert summary.actual_charges == Decimal("1900.00")
        assert summary.balance == Decimal("-200.00")
        assert (summary.pending, summary.sent, summary.paid) == (1, 1, 0)
        assert regularization_service.summary(scope).count == 3
