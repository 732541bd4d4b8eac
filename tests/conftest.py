"""
Pytest fixtures for the approval kernel test suite.

Provides:
- Structured logging configured once per session, with LogContext cleared
  between tests
- ``captured_logs`` for asserting on emitted JSON log records
- A DeterministicClock
- An in-memory SQLite session with all tables created
"""

import json
import logging
from io import StringIO

import pytest

from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, handler=logging.NullHandler())
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
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.submit(request_id, "alice")
            logs = captured_logs()
            assert any(r["message"] == "request_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
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
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session():
    """Fresh in-memory SQLite database per test."""
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    db_session = get_session()
    yield db_session
    db_session.rollback()
    db_session.close()
    drop_tables()
    reset_engine()
