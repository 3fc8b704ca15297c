"""
auth/cookies.py -- The sid session cookie: read, write, clear.

One codec for the whole app. The token is read from the raw Cookie header
with a small tolerant parser rather than a framework helper, so the same
rules apply on every path: first matching name wins, percent-encoded values
are decoded, and anything missing or malformed degrades to "no token"
instead of an error.

Cookie attributes:
  HttpOnly  -- JS cannot read the cookie (XSS mitigation).
  SameSite=Lax -- sent on same-site requests and top-level navigations,
               not on cross-site POST (CSRF mitigation).
  Secure    -- only over HTTPS; on when APP_ENV=production.
  Path=/    -- whole site.
  Expires   -- the session's expiry; the epoch when clearing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import unquote

from fastapi import Request, Response

SESSION_COOKIE_NAME = "sid"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_cookie_header(header: str | None, name: str) -> str | None:
    """Return the value of cookie `name` from a raw Cookie header, or None."""
    if not header:
        return None

    for entry in header.split(";"):
        key, sep, value = entry.strip().partition("=")
        if not sep or key.strip() != name:
            continue
        value = value.strip()
        if value.startswith('"') and value.endswith('"') and len(value) >= 2:
            value = value[1:-1]
        if not value:
            return None
        try:
            return unquote(value, errors="strict")
        except UnicodeDecodeError:
            return value

    return None


def read_session_token(request: Request) -> str | None:
    """Extract the bearer token from the request's sid cookie."""
    return parse_cookie_header(request.headers.get("cookie"), SESSION_COOKIE_NAME)


def set_session_cookie(response: Response, token: str, expires_at: datetime, secure: bool) -> None:
    """Write the bearer token as the sid cookie, expiring with the session."""
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        expires=expires_at,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
    )


def clear_session_cookie(response: Response, secure: bool) -> None:
    """Expire the sid cookie immediately. Sent even when no cookie was present."""
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value="",
        expires=_EPOCH,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
    )
