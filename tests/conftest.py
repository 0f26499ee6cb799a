"""
Pytest fixtures for the copro accounting test suite.

Provides:
- A session-scoped engine and schema (SQLite in memory by default)
- Per-test sessions isolated by an outer transaction that is rolled back
- Caller scopes for two residences, a deterministic clock
- Factories for accounts, journals and lots

Environment Variables:
- DATABASE_URL: database for the suite.  Defaults to ``sqlite:///:memory:``.
  Tests marked ``postgres`` run only when it points at PostgreSQL.
"""

import json
import logging
import os
from collections.abc import Generator
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from copro_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from copro_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from copro_kernel.domain.clock import DeterministicClock
from copro_kernel.domain.references import StaticDirectory
from copro_kernel.domain.scope import CallerScope
from copro_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from copro_kernel.models.account import AccountType
from copro_kernel.models.journal import JournalType
from copro_kernel.selectors.ledger_selector import LedgerSelector
from copro_kernel.services.ledger_service import LedgerService

DEFAULT_DATABASE_URL = "sqlite:///:memory:"

TEST_ACTOR_ID = UUID("00000000-0000-4000-b000-000000000001")
RESIDENCE_A_ID = UUID("00000000-0000-4000-b000-0000000000a1")
RESIDENCE_B_ID = UUID("00000000-0000-4000-b000-0000000000b1")


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def pytest_configure(config):
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")


def pytest_collection_modifyitems(config, items):
    if get_database_url().startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="DATABASE_URL is not PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture copro_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger_service):
            ledger_service.post_line(...)
            assert any(r["message"] == "ledger_line_posted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("copro_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(get_database_url(), echo=False, pool_size=10, max_overflow=10)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Session joined to an outer transaction.

    ``session.commit()`` inside a test only releases a savepoint; the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture
def session_factory(db_tables):
    """Factory for real, committing sessions (concurrency tests)."""
    return get_session_factory()


# =============================================================================
# Identity and clock
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def scope() -> CallerScope:
    """Caller working on residence A."""
    return CallerScope(residence_id=RESIDENCE_A_ID, actor_id=TEST_ACTOR_ID)


@pytest.fixture
def other_scope() -> CallerScope:
    """Caller working on residence B."""
    return CallerScope(residence_id=RESIDENCE_B_ID, actor_id=TEST_ACTOR_ID)


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def ledger_service(session, deterministic_clock) -> LedgerService:
    return LedgerService(session, clock=deterministic_clock)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def account_factory(ledger_service, scope):
    """create(code, account_type, name=None, scope=None) -> AccountInfo."""

    def _create(code, account_type=AccountType.EXPENSE, name=None, caller=None):
        return ledger_service.create_account(
            caller or scope, code, name or f"Account {code}", account_type,
        )

    return _create


@pytest.fixture
def journal_factory(ledger_service, scope):
    """create(code, journal_type, caller=None) -> JournalInfo."""

    def _create(code, journal_type=JournalType.MISCELLANEOUS, caller=None):
        return ledger_service.create_journal(caller or scope, code, f"Journal {code}", journal_type)

    return _create


@pytest.fixture
def standard_accounts(account_factory):
    """A small co-ownership chart for residence A."""
    return {
        "bank": account_factory("512", AccountType.ASSET, "Bank"),
        "owners": account_factory("450", AccountType.LIABILITY, "Co-owners"),
        "suppliers": account_factory("401", AccountType.LIABILITY, "Suppliers"),
        "water": account_factory("601", AccountType.EXPENSE, "Water"),
        "electricity": account_factory("602", AccountType.EXPENSE, "Electricity"),
        "maintenance": account_factory("614", AccountType.EXPENSE, "Maintenance"),
        "insurance": account_factory("616", AccountType.EXPENSE, "Insurance"),
        "calls": account_factory("701", AccountType.REVENUE, "Calls for funds"),
    }


@pytest.fixture
def bank_journal(journal_factory):
    return journal_factory("BQ", JournalType.BANK)


@pytest.fixture
def purchases_journal(journal_factory):
    return journal_factory("AC", JournalType.PURCHASES)


# =============================================================================
# Directory fixtures
# =============================================================================


@pytest.fixture
def lot_factory():
    """new(number) -> UUID of a fresh lot, registered in ``lots`` directory."""
    lots: dict[UUID, str] = {}

    def _new(number: str) -> UUID:
        lot_id = uuid4()
        lots[lot_id] = number
        return lot_id

    _new.lots = lots
    return _new


@pytest.fixture
def directory(lot_factory) -> StaticDirectory:
    return StaticDirectory(lots=lot_factory.lots)
