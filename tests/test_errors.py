"""
tests/test_errors.py -- Unit tests for db/errors.py.

Covers:
  - SQLSTATE and symbolic network codes on the error itself
  - codes found through .orig, __cause__ and __context__
  - cyclic cause chains terminate
  - message hints as a last resort
  - terminal errors are not classified as transient
  - translate_storage_errors() re-raise semantics
"""

from __future__ import annotations

import errno
import logging
import socket

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from db.errors import (
    SERVICE_UNAVAILABLE_MESSAGE,
    DomainError,
    ServiceUnavailableError,
    is_service_unavailable,
    service_unavailable_response,
    translate_storage_errors,
)


class _DriverError(Exception):
    """Stands in for a driver exception that carries a SQLSTATE."""

    def __init__(self, message: str, pgcode: str | None = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


class TestDirectCodes:
    def test_connection_refused_errno(self) -> None:
        assert is_service_unavailable(ConnectionRefusedError(errno.ECONNREFUSED, "refused"))

    def test_plain_oserror_with_reset_errno(self) -> None:
        assert is_service_unavailable(OSError(errno.ECONNRESET, "reset by peer"))

    def test_timeout_error(self) -> None:
        assert is_service_unavailable(TimeoutError())

    @pytest.mark.parametrize("code", ["08006", "57P01", "53300", "3D000", "28P01"])
    def test_sqlstate_attribute(self, code: str) -> None:
        assert is_service_unavailable(_DriverError("server said no", pgcode=code))

    def test_dns_failure(self) -> None:
        assert is_service_unavailable(socket.gaierror(socket.EAI_NONAME, "Name or service not known"))

    def test_none_is_not_transient(self) -> None:
        assert not is_service_unavailable(None)


class TestCauseChain:
    def test_sqlalchemy_orig(self) -> None:
        exc = OperationalError("SELECT 1", {}, _DriverError("boom", pgcode="08001"))
        assert is_service_unavailable(exc)

    def test_explicit_cause(self) -> None:
        try:
            try:
                raise ConnectionResetError(errno.ECONNRESET, "reset")
            except ConnectionResetError as inner:
                raise RuntimeError("query failed") from inner
        except RuntimeError as outer:
            assert is_service_unavailable(outer)

    def test_implicit_context(self) -> None:
        try:
            try:
                raise BrokenPipeError(errno.EPIPE, "broken pipe")
            except BrokenPipeError:
                raise ValueError("while writing")
        except ValueError as outer:
            assert is_service_unavailable(outer)

    def test_cyclic_chain_terminates(self) -> None:
        first = ValueError("first")
        second = ValueError("second")
        first.__cause__ = second
        second.__cause__ = first
        assert is_service_unavailable(first) is False


class TestMessageHints:
    @pytest.mark.parametrize(
        "message",
        [
            "server closed the connection: connection terminated unexpectedly",
            "could not connect to server: No such file or directory",
            "FATAL: the database system is starting up",
            "Connection Refused by upstream",
            "statement timeout",
        ],
    )
    def test_hint_matches(self, message: str) -> None:
        assert is_service_unavailable(Exception(message))


class TestTerminalErrors:
    def test_integrity_error_is_not_transient(self) -> None:
        exc = IntegrityError("INSERT", {}, _DriverError("duplicate key value", pgcode="23505"))
        assert not is_service_unavailable(exc)

    def test_plain_errors_are_not_transient(self) -> None:
        assert not is_service_unavailable(ValueError("bad input"))
        assert not is_service_unavailable(KeyError("missing"))

    def test_bound_parameters_are_not_matched_against_hints(self) -> None:
        exc = IntegrityError(
            "INSERT INTO users (email) VALUES (?)",
            ("connection refused timeout@example.com",),
            _DriverError("UNIQUE constraint failed: users.email"),
        )
        assert not is_service_unavailable(exc)

    def test_wrapped_driver_message_still_matches_hints(self) -> None:
        exc = OperationalError("SELECT 1", {}, _DriverError("could not connect to server: Connection refused"))
        assert is_service_unavailable(exc)


class TestTranslateStorageErrors:
    def test_transient_error_is_translated(self) -> None:
        refused = ConnectionRefusedError(errno.ECONNREFUSED, "refused")
        with pytest.raises(ServiceUnavailableError) as info:
            with translate_storage_errors():
                raise refused
        assert info.value.__cause__ is refused
        assert str(info.value) == SERVICE_UNAVAILABLE_MESSAGE

    def test_terminal_error_passes_through(self) -> None:
        with pytest.raises(ValueError):
            with translate_storage_errors():
                raise ValueError("not storage")

    def test_already_translated_error_is_not_wrapped_again(self) -> None:
        original = ServiceUnavailableError()
        with pytest.raises(ServiceUnavailableError) as info:
            with translate_storage_errors():
                raise original
        assert info.value is original

    def test_domain_error_is_never_classified(self) -> None:
        class EmailTaken(DomainError):
            pass

        integrity = IntegrityError("INSERT", ("timeout@example.com",), _DriverError("duplicate key value"))
        with pytest.raises(EmailTaken):
            with translate_storage_errors():
                try:
                    raise integrity
                except IntegrityError as exc:
                    raise EmailTaken("Email already registered") from exc

    def test_outage_log_omits_statement_parameters(self, caplog) -> None:
        exc = OperationalError(
            "INSERT INTO users (password_hash) VALUES (?)",
            ("$2b$12$secrethashvalue",),
            ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused"),
        )
        with caplog.at_level(logging.WARNING, logger="authcore.db"):
            with pytest.raises(ServiceUnavailableError):
                with translate_storage_errors():
                    raise exc
        assert "Connection refused" in caplog.text
        assert "secrethashvalue" not in caplog.text

    def test_clean_block_is_untouched(self) -> None:
        with translate_storage_errors():
            value = 1 + 1
        assert value == 2


def test_response_body_is_uniform() -> None:
    assert service_unavailable_response() == {"error": "Service temporarily unavailable"}
