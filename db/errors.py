"""
db/errors.py -- Transient storage failure classification.

Storage-facing callers consult is_service_unavailable() to decide between a
uniform "temporarily unavailable" answer and a normal error. The raw driver
message is never forwarded to clients.

An error is classified by walking its cause chain. Python exposes three
links that matter here:
  .orig        -- SQLAlchemy's DBAPIError wraps the driver exception here.
  __cause__    -- explicit `raise ... from exc` chaining.
  __context__  -- implicit chaining when raised inside an except block.
A visited set bounds the walk so a cyclic chain cannot loop forever.

Layer rule: db/ may import from core/ only.
"""

from __future__ import annotations

import errno
import logging
import socket
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger("authcore.db")

# PostgreSQL SQLSTATEs: connection exceptions (08xxx), auth failure during
# startup (28P01), missing database/relation while the server is still being
# provisioned (3D000, 42P01), too many connections (53300), and admin/crash
# shutdown or "cannot connect now" (57P01-57P03). Symbolic network codes cover
# refused/reset connections, DNS failures and timeouts.
SERVICE_UNAVAILABLE_CODES: frozenset[str] = frozenset(
    {
        "08000",
        "08001",
        "08003",
        "08004",
        "08006",
        "08007",
        "08P01",
        "28P01",
        "3D000",
        "42P01",
        "53300",
        "57P01",
        "57P02",
        "57P03",
        "ETIMEDOUT",
        "ECONNREFUSED",
        "ECONNRESET",
        "EPIPE",
        "ENOTFOUND",
        "EAI_AGAIN",
    }
)

MESSAGE_HINTS: tuple[str, ...] = (
    "connection terminated unexpectedly",
    "could not connect to server",
    "database system is starting up",
    "timeout",
    "connection refused",
)

SERVICE_UNAVAILABLE_MESSAGE = "Service temporarily unavailable"
SERVICE_UNAVAILABLE_BODY: dict[str, str] = {"error": SERVICE_UNAVAILABLE_MESSAGE}

# getaddrinfo failures carry socket.EAI_* numbers, not errno numbers.
_GAI_CODES: dict[int, str] = {
    socket.EAI_NONAME: "ENOTFOUND",
    socket.EAI_AGAIN: "EAI_AGAIN",
}


class DomainError(Exception):
    """Base for business-rule errors raised inside a storage block.

    translate_storage_errors() re-raises these untouched; they are never
    evidence of an outage, whatever their cause chain holds.
    """


class ServiceUnavailableError(Exception):
    """Storage is temporarily unreachable. Maps to HTTP 503."""

    def __init__(self, message: str = SERVICE_UNAVAILABLE_MESSAGE) -> None:
        super().__init__(message)


def _codes_for(error: BaseException) -> set[str]:
    """Collect every condition code an exception carries."""
    codes: set[str] = set()
    for attr in ("code", "pgcode", "sqlstate"):
        value = getattr(error, attr, None)
        if isinstance(value, str):
            codes.add(value)
    if isinstance(error, socket.gaierror) and error.errno in _GAI_CODES:
        codes.add(_GAI_CODES[error.errno])
    elif isinstance(error, OSError) and isinstance(error.errno, int):
        name = errno.errorcode.get(error.errno)
        if name:
            codes.add(name)
    if isinstance(error, TimeoutError):
        codes.add("ETIMEDOUT")
    elif isinstance(error, ConnectionRefusedError):
        codes.add("ECONNREFUSED")
    elif isinstance(error, ConnectionResetError):
        codes.add("ECONNRESET")
    elif isinstance(error, BrokenPipeError):
        codes.add("EPIPE")
    return codes


def _next_links(error: BaseException) -> list[BaseException]:
    links = []
    orig = getattr(error, "orig", None)
    if isinstance(orig, BaseException):
        links.append(orig)
    if error.__cause__ is not None:
        links.append(error.__cause__)
    if error.__context__ is not None:
        links.append(error.__context__)
    return links


def is_service_unavailable(error: BaseException | None) -> bool:
    """Return True if any error in the cause chain is a transient storage fault."""
    pending: list[BaseException] = [error] if error is not None else []
    seen: set[int] = set()

    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))

        if _codes_for(current) & SERVICE_UNAVAILABLE_CODES:
            return True

        # A DBAPIError renders its SQL and bound parameters; only the driver
        # message (reached through .orig) is matched against the hints.
        message = "" if isinstance(getattr(current, "orig", None), BaseException) else str(current).lower()
        if message and any(hint in message for hint in MESSAGE_HINTS):
            return True

        pending.extend(_next_links(current))

    return False


def service_unavailable_response() -> dict[str, str]:
    """Return the uniform body sent instead of any transient storage error."""
    return dict(SERVICE_UNAVAILABLE_BODY)


@contextmanager
def translate_storage_errors() -> Iterator[None]:
    """Re-raise transient storage failures as ServiceUnavailableError.

    Everything else propagates unchanged. DomainError subclasses raised
    inside the block are never classified, and terminal SQL errors keep
    their type.
    """
    try:
        yield
    except (ServiceUnavailableError, DomainError):
        raise
    except Exception as exc:
        if is_service_unavailable(exc):
            logger.warning("Storage unavailable: %s", getattr(exc, "orig", None) or exc)
            raise ServiceUnavailableError() from exc
        raise
