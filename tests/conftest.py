"""
Pytest fixtures for the approval engine test suite.

Provides:
- Structured-logging capture
- A deterministic clock
- A fresh database per test (in-memory SQLite by default)
- Rollback-isolated sessions for kernel service tests
- Session factories and a wired DraftManager for facade tests
- Route spec factories

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  in-memory SQLite.  Tables are created and dropped around every test.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session, sessionmaker

from approval_config import get_active_config
from approval_config.store import TemplateStore
from approval_kernel.db.engine import build_engine, create_tables, drop_tables
from approval_kernel.domain.approval import RouteSpec, StageSpec
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_services.draft_manager import DraftManager
from tests.factories import RecordingListener, make_stage

IN_MEMORY_URL = "sqlite://"

OWNER_ID = UUID("00000000-0000-0000-0000-00000000a001")


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
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, manager):
            manager.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "draft_submitted" for r in logs)
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


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", IN_MEMORY_URL)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def db_engine():
    """A fresh database with all tables for one test."""
    eng = build_engine(get_database_url())
    drop_tables(eng)
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session whose work is rolled back at teardown.

    The session joins an outer transaction on a dedicated connection; a
    ``session.commit()`` inside the test only releases a savepoint.
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
def session_factory(db_engine) -> sessionmaker[Session]:
    """Session factory with real commits, for the draft manager."""
    return sessionmaker(bind=db_engine, expire_on_commit=False)


# =============================================================================
# Configuration and facade
# =============================================================================


@pytest.fixture(scope="session")
def default_config():
    return get_active_config()


@pytest.fixture
def template_store(default_config) -> TemplateStore:
    return default_config.template_store()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def manager(session_factory, template_store, clock, listener) -> DraftManager:
    """DraftManager over a fresh database, default templates, frozen clock."""
    return DraftManager(
        session_factory,
        template_provider=template_store,
        listeners=[listener],
        clock=clock,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def owner_id() -> UUID:
    return OWNER_ID


# =============================================================================
# Route spec factories
# =============================================================================


@pytest.fixture
def stage_factory():
    return make_stage


@pytest.fixture
def route_factory():
    """Build an explicit RouteSpec from stage specs."""

    def _make(*stages: StageSpec) -> RouteSpec:
        return RouteSpec.explicit(stages)

    return _make
