"""
db/engine.py -- Pooled SQLAlchemy engine construction and liveness probe.

One Engine per process. The FastAPI lifespan creates it at startup, stores it
on app.state.db and disposes it on shutdown; every store call receives it (or
a Connection checked out from it) explicitly. Nothing here is a module global.

SQLAlchemy provides the pool: a store call checks out one connection for its
statement and returns it immediately. Swapping SQLite for PostgreSQL is a
connection string change.

TLS (PostgreSQL only):
  require -- always sslmode=require
  auto    -- TLS unless the target host is local
  off     -- plain connection (rejected in production by core.config)
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from core.config import Settings, SslMode

logger = logging.getLogger("authcore.db")

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})

# Idle connections are recycled after this many seconds so a server-side idle
# timeout never hands a dead connection to a request.
_POOL_RECYCLE_SECONDS = 300


class DatabaseProbeTimeout(TimeoutError):
    """The liveness probe did not complete within its deadline."""

    code = "ETIMEDOUT"


def use_ssl(mode: SslMode, host: str | None) -> bool:
    """Decide whether to require TLS for a database host."""
    if mode == "require":
        return True
    if mode == "off":
        return False
    return bool(host) and host.lower() not in _LOCAL_HOSTS


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    """Turn on FK enforcement so ON DELETE CASCADE works.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA foreign_keys = ON")


def create_db_engine(settings: Settings, pool_size: int | None = None) -> Engine:
    """Build the process-wide engine from settings.

    pool_size overrides DB_POOL_SIZE -- the migration CLI passes 1 because it
    only ever needs a single dedicated connection.
    """
    url = make_url(settings.database_url)
    connect_args: dict = {}
    engine_kwargs: dict = {}

    if url.get_backend_name() == "sqlite":
        # FastAPI runs sync handlers in a thread pool; the same connection may
        # be reused across threads.
        connect_args["check_same_thread"] = False
    else:
        engine_kwargs.update(
            pool_size=pool_size or settings.db_pool_size,
            max_overflow=0,
            pool_recycle=_POOL_RECYCLE_SECONDS,
        )
        if use_ssl(settings.db_ssl_mode, url.host):
            connect_args["sslmode"] = "require"

    # Bound parameters (password hashes, emails) stay out of error strings and logs.
    engine = create_engine(url, connect_args=connect_args, hide_parameters=True, **engine_kwargs)
    if url.get_backend_name() == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(
        "Database engine created (backend=%s, host=%s)",
        url.get_backend_name(),
        url.host or "local",
    )
    return engine


def _select_one(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


async def probe_database(engine: Engine, timeout_ms: int) -> None:
    """Run SELECT 1 against the pool, failing fast if it takes too long.

    The query runs in a worker thread and races asyncio's timer. When the
    timer wins, DatabaseProbeTimeout (code ETIMEDOUT) is raised so a health
    check never blocks longer than timeout_ms. The abandoned thread finishes
    or fails on its own and returns its connection to the pool.
    """
    try:
        await asyncio.wait_for(asyncio.to_thread(_select_one, engine), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as exc:
        raise DatabaseProbeTimeout(f"Database probe timed out after {timeout_ms}ms") from exc
