"""
Tests for works fund threshold arithmetic.
"""

from decimal import Decimal

from copro_engines.works_fund import fund_position, progress, required_minimum


def test_required_minimum():
    assert required_minimum(Decimal("100000"), Decimal("5")) == Decimal("5000")


def test_progress_sixty_percent():
    assert progress(Decimal("3000"), Decimal("5000")) == Decimal("0.6")


def test_progress_nothing_required():
    assert progress(Decimal("3000"), Decimal("0")) == Decimal("0")


def test_position_shortfall():
    position = fund_position(Decimal("3000"), Decimal("5"), Decimal("100000"))
    assert position.shortfall == Decimal("2000")
    assert not position.is_compliant


def test_position_compliant_when_over():
    position = fund_position(Decimal("6000"), Decimal("5"), Decimal("100000"))
    assert position.shortfall == Decimal("0")
    assert position.is_compliant
