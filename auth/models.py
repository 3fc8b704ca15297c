"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
service do the work; routes map these onto response models.

Layer rule: no imports from api/ or db/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account.

    email is stored as submitted (trimmed); uniqueness is case-insensitive and
    enforced by the lower(email) unique index, not by normalizing on write.

    profile_id is filled by lookups that join the optional profiles table. It
    is None when the user has no profile yet (always the case right after
    registration).
    """

    id: str
    email: str
    password_hash: str
    profile_id: str | None = None


@dataclass
class SessionLookup:
    """A live session row joined with its owning user (and profile, if any)."""

    session_id: str
    user_id: str
    email: str
    expires_at: datetime
    profile_id: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity for one request. Never persisted.

    token is the raw bearer value from the request cookie. It exists only in
    memory for the lifetime of the request.
    """

    token: str
    session_id: str
    user_id: str
    email: str
    expires_at: datetime
    profile_id: str | None = None


@dataclass(frozen=True)
class SessionGrant:
    """Result of a successful register or login.

    Carries the raw token exactly once so the route layer can write the
    cookie. The store only ever sees its fingerprint.
    """

    user_id: str
    email: str
    token: str
    expires_at: datetime
    profile_id: str | None = None


@dataclass(frozen=True)
class Account:
    """Public view of a user: what register, login, and /me return."""

    user_id: str
    email: str
    profile_id: str | None = None
