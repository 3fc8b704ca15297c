"""
auth/service.py -- Registration, login, logout, and per-request session resolution.

Per-request identity is a two-state machine: Anonymous -> Authenticated.
It is re-evaluated from the cookie on every request; nothing is cached
between requests.

Single live session per user: register and login delete every existing
session of the user before inserting the new one. Two concurrent logins for
the same user race delete-then-insert; whichever insert lands last is the
survivor (last write wins). No in-process lock is needed.

Registration races are settled by the lower(email) unique index. The
find_user_by_email pre-check only avoids a pointless bcrypt round for the
common duplicate case.

Storage errors: every store call runs inside translate_storage_errors(), so a
transient outage surfaces as db.errors.ServiceUnavailableError. Other
storage errors propagate unchanged (a generic 500 at the API layer).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth import store
from auth.models import Account, Principal, SessionGrant
from auth.tokens import (
    burn_password_check,
    fingerprint_token,
    generate_id,
    generate_session_token,
    hash_password,
    verify_password,
)
from db.errors import DomainError, translate_storage_errors

logger = logging.getLogger("authcore.auth")


class AuthError(DomainError):
    """Base authentication error."""


class ConflictError(AuthError):
    """Email already registered (any casing)."""


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password -- deliberately indistinguishable."""


class UnauthorizedError(AuthError):
    """No live session, or the session's user no longer exists."""


class SessionService:
    """Orchestrates the store for every auth operation.

    Holds the process-wide Engine (the connection pool) and passes it to each
    store call as the executor.
    """

    def __init__(self, engine: Engine, session_days: int) -> None:
        self.engine = engine
        self.session_days = session_days

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> SessionGrant:
        """Create an account and sign it in.

        Raises ConflictError if the email is taken, whether caught by the
        pre-check or by the unique index during a concurrent insert.
        """
        email = email.strip()
        with translate_storage_errors():
            if store.find_user_by_email(self.engine, email) is not None:
                raise ConflictError("Email already registered")

            user_id = generate_id()
            try:
                store.create_user(self.engine, user_id, email, hash_password(password))
            except IntegrityError as exc:
                raise ConflictError("Email already registered") from exc

            # A brand-new id owns no sessions; the purge keeps the single
            # live session rule true regardless.
            store.delete_sessions_for_user(self.engine, user_id)
            grant = self._issue_session(user_id, email, profile_id=None)

        logger.info("Registered user %s", email)
        return grant

    def login(self, email: str, password: str) -> SessionGrant:
        """Verify credentials and replace the user's session with a new one.

        Unknown email and wrong password raise the same InvalidCredentialsError
        after the same amount of bcrypt work.
        """
        with translate_storage_errors():
            user = store.find_user_by_email(self.engine, email.strip())

        if user is None:
            burn_password_check(password)
            logger.warning("Login failed: unknown email")
            raise InvalidCredentialsError("Invalid credentials")

        if not verify_password(password, user.password_hash):
            logger.warning("Login failed: bad password for user %s", user.id)
            raise InvalidCredentialsError("Invalid credentials")

        with translate_storage_errors():
            store.delete_sessions_for_user(self.engine, user.id)
            grant = self._issue_session(user.id, user.email, profile_id=user.profile_id)

        logger.info("User %s logged in", user.id)
        return grant

    def logout(self, token: str | None) -> None:
        """Delete the session behind token, if any. Idempotent."""
        if not token:
            return
        with translate_storage_errors():
            removed = store.delete_session_by_fingerprint(self.engine, fingerprint_token(token))
        logger.debug("Logout removed %d session(s)", removed)

    # ------------------------------------------------------------------
    # Per-request resolution
    # ------------------------------------------------------------------

    def resolve(self, token: str | None) -> Principal | None:
        """Return the principal for a bearer token, or None for anonymous.

        Unknown and expired tokens are simply anonymous, not errors.
        """
        if not token:
            return None
        with translate_storage_errors():
            found = store.find_live_session_by_fingerprint(self.engine, fingerprint_token(token))
        if found is None:
            return None
        return Principal(
            token=token,
            session_id=found.session_id,
            user_id=found.user_id,
            email=found.email,
            expires_at=found.expires_at,
            profile_id=found.profile_id,
        )

    def touch(self, session_id: str) -> None:
        """Record session activity. Best-effort: failures are logged, never raised."""
        try:
            store.touch_session(self.engine, session_id)
        except Exception:
            logger.warning("Failed to touch session %s", session_id, exc_info=True)

    @staticmethod
    def require_authenticated(principal: Principal | None) -> Principal:
        if principal is None:
            raise UnauthorizedError("Unauthorized")
        return principal

    def get_self(self, principal: Principal | None) -> Account:
        """Return the caller's account, re-reading the user row.

        A live session whose user has since been removed is Unauthorized.
        """
        principal = self.require_authenticated(principal)
        with translate_storage_errors():
            user = store.find_user_by_id(self.engine, principal.user_id)
        if user is None:
            raise UnauthorizedError("Unauthorized")
        return Account(user_id=user.id, email=user.email, profile_id=principal.profile_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete expired session rows. Returns the number removed."""
        with translate_storage_errors():
            removed = store.delete_expired_sessions(self.engine)
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _expiry(self) -> datetime:
        return store.utcnow() + timedelta(days=self.session_days)

    def _issue_session(self, user_id: str, email: str, profile_id: str | None) -> SessionGrant:
        token = generate_session_token()
        expires_at = self._expiry()
        store.create_session(self.engine, generate_id(), user_id, fingerprint_token(token), expires_at)
        return SessionGrant(
            user_id=user_id,
            email=email,
            token=token,
            expires_at=expires_at,
            profile_id=profile_id,
        )
