"""
Pytest fixtures for the ledger test suite.

Provides:
- Structured logging configuration and log capture
- A fresh in-memory SQLite database per test, with immutability listeners
- Deterministic clock, actor id, in-memory audit sink
- A seeded chart of accounts and revenue sources
- Wired services via ``LedgerOrchestrator``
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from ledger_config import get_active_config
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.services.audit_service import InMemoryAuditSink
from ledger_modules.orchestrator import LedgerOrchestrator


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

SEED_ACCOUNTS = (
    ("1010", "Cash on Hand", AccountType.ASSET),
    ("1020", "Cash in Bank", AccountType.ASSET),
    ("1200", "Accounts Receivable", AccountType.ASSET),
    ("2100", "Unearned Revenue", AccountType.LIABILITY),
    ("4000", "Other Revenue", AccountType.REVENUE),
    ("4100", "Bus Rental Income", AccountType.REVENUE),
    ("5000", "Fuel Expense", AccountType.EXPENSE),
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.journal.post(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session():
    """Fresh in-memory database and session for one test."""
    init_engine_from_url("sqlite://")
    create_tables()
    register_immutability_listeners()
    db_session = get_session()
    yield db_session
    db_session.rollback()
    db_session.close()
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


# =============================================================================
# Core collaborators
# =============================================================================


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 1, 15, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def settings(monkeypatch):
    """Packaged default settings, regardless of the caller's environment."""
    monkeypatch.delenv("LEDGER_CONFIG_PATH", raising=False)
    return get_active_config()


@pytest.fixture
def ledger(session, settings, deterministic_clock, audit_sink):
    """All services wired on one session."""
    return LedgerOrchestrator(
        session,
        settings=settings,
        clock=deterministic_clock,
        audit_sink=audit_sink,
    )


@pytest.fixture
def seeded_accounts(ledger, test_actor_id):
    """Chart of accounts used by the revenue bridge and journal tests."""
    return {
        code: ledger.chart.create_account(code, name, account_type, test_actor_id)
        for code, name, account_type in SEED_ACCOUNTS
    }


@pytest.fixture
def revenue_sources(ledger, seeded_accounts, test_actor_id):
    """One source with its own GL account, one falling back to the default."""
    return {
        "rental": ledger.revenue.create_source(
            "BUS_RENTAL", "Bus Rental", test_actor_id, account_code="4100"
        ),
        "other": ledger.revenue.create_source(
            "OTHER", "Miscellaneous", test_actor_id
        ),
    }
