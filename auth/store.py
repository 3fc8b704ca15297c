"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Table Data Gateway + Data Mapper. Each public function is one SQL
statement; _row_to_* functions translate rows into auth/models.py
dataclasses. Service and route code never touches SQL directly.

Executor contract:
  Every function takes an explicit executor as its first argument:
    Engine     -- checks out a pooled connection, runs the statement in its
                  own short transaction, commits, and returns the connection.
    Connection -- runs the statement on the caller's connection and leaves
                  transaction control to the caller.
  The same function therefore works standalone or inside a larger
  transaction without duplication.

Schema ownership:
  The tables are created by db/migrations/*.sql. The Table objects below
  mirror those columns for query building only; nothing here calls
  metadata.create_all().

Security:
  All queries use bound parameters. No f-strings in SQL.
  sessions.token_hash holds SHA-256 fingerprints; raw tokens never reach
  this module.

Layer rule: no imports from api/ or db/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Union

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, and_, func, select
from sqlalchemy.engine import Connection, Engine

from auth.models import SessionLookup, User

Executor = Union[Engine, Connection]

# ---------------------------------------------------------------------------
# Schema mirror (see db/migrations/)
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", Text, nullable=False),  # unique on lower(email)
    Column("password_hash", Text, nullable=False),
    Column("created_at", DateTime(timezone=True)),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True)),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("last_seen_at", DateTime(timezone=True)),
)

profiles = Table(
    "profiles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, unique=True),
    Column("display_name", Text),
    Column("created_at", DateTime(timezone=True)),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes. Every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@contextmanager
def _connect(executor: Executor) -> Iterator[Connection]:
    if isinstance(executor, Engine):
        with executor.begin() as conn:
            yield conn
    else:
        yield executor


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

_user_columns = (
    users.c.id,
    users.c.email,
    users.c.password_hash,
    profiles.c.id.label("profile_id"),
)
_user_join = users.outerjoin(profiles, profiles.c.user_id == users.c.id)


def find_user_by_email(executor: Executor, email: str) -> User | None:
    """Case-insensitive lookup. Also returns the profile id in the same query."""
    stmt = select(*_user_columns).select_from(_user_join).where(func.lower(users.c.email) == func.lower(email))
    with _connect(executor) as conn:
        row = conn.execute(stmt).fetchone()
    return _row_to_user(row) if row is not None else None


def find_user_by_id(executor: Executor, user_id: str) -> User | None:
    stmt = select(*_user_columns).select_from(_user_join).where(users.c.id == user_id)
    with _connect(executor) as conn:
        row = conn.execute(stmt).fetchone()
    return _row_to_user(row) if row is not None else None


def create_user(executor: Executor, user_id: str, email: str, password_hash: str) -> None:
    """Insert a user.

    Raises sqlalchemy.exc.IntegrityError when the email is already taken in
    any casing. That unique index is the authoritative guard against
    concurrent registrations; callers translate it to a conflict.
    """
    with _connect(executor) as conn:
        conn.execute(
            users.insert().values(
                id=user_id,
                email=email,
                password_hash=password_hash,
                created_at=utcnow(),
            )
        )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def create_session(executor: Executor, session_id: str, user_id: str, token_hash: str, expires_at: datetime) -> None:
    now = utcnow()
    with _connect(executor) as conn:
        conn.execute(
            sessions.insert().values(
                id=session_id,
                user_id=user_id,
                token_hash=token_hash,
                created_at=now,
                expires_at=expires_at,
                last_seen_at=now,
            )
        )


def find_live_session_by_fingerprint(
    executor: Executor, token_hash: str, now: datetime | None = None
) -> SessionLookup | None:
    """Return the session for a fingerprint only while expires_at > now.

    Expired rows are treated as absent. They are not deleted here; the
    periodic purge (delete_expired_sessions) removes them.
    """
    stmt = (
        select(
            sessions.c.id.label("session_id"),
            sessions.c.user_id,
            users.c.email,
            sessions.c.expires_at,
            profiles.c.id.label("profile_id"),
        )
        .select_from(
            sessions.join(users, users.c.id == sessions.c.user_id).outerjoin(
                profiles, profiles.c.user_id == users.c.id
            )
        )
        .where(and_(sessions.c.token_hash == token_hash, sessions.c.expires_at > (now or utcnow())))
    )
    with _connect(executor) as conn:
        row = conn.execute(stmt).fetchone()
    return _row_to_session(row) if row is not None else None


def touch_session(executor: Executor, session_id: str) -> None:
    """Stamp last_seen_at. Callers treat failures as non-fatal."""
    with _connect(executor) as conn:
        conn.execute(sessions.update().where(sessions.c.id == session_id).values(last_seen_at=utcnow()))


def delete_session_by_fingerprint(executor: Executor, token_hash: str) -> int:
    """Delete the session for a fingerprint. Returns rows removed (0 is fine)."""
    with _connect(executor) as conn:
        result = conn.execute(sessions.delete().where(sessions.c.token_hash == token_hash))
    return result.rowcount


def delete_sessions_for_user(executor: Executor, user_id: str) -> int:
    """Delete every session owned by a user. Returns rows removed."""
    with _connect(executor) as conn:
        result = conn.execute(sessions.delete().where(sessions.c.user_id == user_id))
    return result.rowcount


def delete_expired_sessions(executor: Executor, now: datetime | None = None) -> int:
    """Remove sessions whose expiry has passed. Returns rows removed."""
    with _connect(executor) as conn:
        result = conn.execute(sessions.delete().where(sessions.c.expires_at <= (now or utcnow())))
    return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        profile_id=row.profile_id,
    )


def _row_to_session(row) -> SessionLookup:
    return SessionLookup(
        session_id=row.session_id,
        user_id=row.user_id,
        email=row.email,
        expires_at=_as_utc(row.expires_at),
        profile_id=row.profile_id,
    )
