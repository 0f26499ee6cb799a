"""
Fixtures for the co-ownership module services.

Every service shares the test session and the deterministic clock, so
``commit()`` calls only release savepoints of the outer transaction.
"""

import pytest

from copro_modules.bank.service import BankService
from copro_modules.budget.service import BudgetService
from copro_modules.distribution.service import DistributionService
from copro_modules.regularization.service import RegularizationService
from copro_modules.works_fund.service import WorksFundService


@pytest.fixture
def distribution_service(session, deterministic_clock):
    return DistributionService(session, clock=deterministic_clock)


@pytest.fixture
def budget_service(session, deterministic_clock):
    return BudgetService(session, clock=deterministic_clock)


@pytest.fixture
def regularization_service(session, deterministic_clock, directory):
    return RegularizationService(session, clock=deterministic_clock, directory=directory)


@pytest.fixture
def bank_service(session, deterministic_clock):
    return BankService(session, clock=deterministic_clock)


@pytest.fixture
def works_fund_service(session, deterministic_clock):
    return WorksFundService(session, clock=deterministic_clock)


@pytest.fixture
def general_key(distribution_service, scope, lot_factory):
    """GEN key with lot 1 = 100 shares and lot 2 = 300 shares."""
    key = distribution_service.create_key(scope, "GEN", "Charges generales")
    lot_1 = lot_factory("1")
    lot_2 = lot_factory("2")
    distribution_service.set_share(scope, key.id, lot_1, 100)
    distribution_service.set_share(scope, key.id, lot_2, 300)
    return key, lot_1, lot_2
