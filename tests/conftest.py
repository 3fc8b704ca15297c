"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - make_test_engine(): a migrated, isolated in-memory SQLite database
  - _patch_lifespan(): wires a test engine into app.state, bypassing real startup
  - engine / service: store- and service-level fixtures
  - api_client: TestClient over the real FastAPI app

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers and background tasks in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process. A random suffix per fixture keeps
tests from seeing each other's rows.

Environment variables must be set before any authcore import: get_settings()
is cached and auth/tokens.py reads BCRYPT_ROUNDS at import time.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api/auth/core so the cached Settings and the
# module-level dummy hash use the cheap test cost factor.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUTO_MIGRATE_ON_BOOT", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:authcore_unused?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.service import SessionService
from core.config import Settings
from db.engine import create_db_engine
from db.migrate import run_migrations

TEST_SESSION_DAYS = 14


def memory_db_url(prefix: str = "authcore") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_test_engine(migrate: bool = True) -> Engine:
    """Create an isolated shared-memory database, migrated to the current schema."""
    engine = create_db_engine(Settings(database_url=memory_db_url()))
    if migrate:
        run_migrations(engine)
    return engine


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db = engine
        app.state.sessions = SessionService(engine, session_days=TEST_SESSION_DAYS)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = make_test_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def service(engine: Engine) -> SessionService:
    return SessionService(engine, session_days=TEST_SESSION_DAYS)


@pytest.fixture
def api_client(engine: Engine) -> Generator[TestClient, None, None]:
    """TestClient over the real app with an isolated, migrated database.

    Tests pass the session cookie explicitly through the Cookie header.
    An explicit header takes precedence over the client's cookie jar, so
    what a test sends is exactly what it asserts on.
    """
    app.router.lifespan_context = _patch_lifespan(engine)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
