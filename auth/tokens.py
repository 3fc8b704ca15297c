"""
auth/tokens.py -- Password hashing, session tokens, and token fingerprints.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Each hash embeds its own
       algorithm tag, cost factor, and random salt, so verify needs nothing
       but the stored string. Cost comes from Settings.bcrypt_rounds. The
       _DUMMY_HASH constant enables timing equalization so response time does
       not reveal whether an email is registered.

  Session tokens: secrets.token_urlsafe(32) gives 256 bits of entropy in a
       cookie-safe alphabet. Guessing or enumerating a live token is
       computationally infeasible.

  Fingerprints: SHA-256 of the raw token, hex encoded. Deterministic so the
       sessions table can be indexed and queried by it; one-way so a leaked
       table does not yield usable cookies. A fast hash is correct here:
       the input is already high-entropy, so bcrypt's slowness buys nothing.

Layer rule: no imports from api/ or db/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid

import bcrypt

from core.config import get_settings

logger = logging.getLogger("authcore.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt rejects inputs longer than 72 bytes. The API layer caps password
    length in bytes (api/models.py), so inputs reaching here are in range.
    """
    if not plain:
        raise ValueError("Password cannot be empty")
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: an empty input or a malformed stored hash is a mismatch.
    """
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        logger.warning("Password verification error: %s", exc)
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always verify against it when the email does
# not exist -- bcrypt's constant work factor equalizes timing.
_DUMMY_HASH: str = hash_password("authcore_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend the same bcrypt work as a real check, for unknown accounts."""
    verify_password(plain or "x", _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session tokens and identifiers
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """Return a new opaque bearer token for the session cookie."""
    return secrets.token_urlsafe(32)


def generate_id() -> str:
    """Return a new random row identifier (UUID4), independent of insert order."""
    return str(uuid.uuid4())


def fingerprint_token(token: str) -> str:
    """Return SHA-256(token) as hex -- the only form of a token that is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
