"""
tests/test_cookies.py -- Unit tests for the sid cookie codec in auth/cookies.py.

Covers:
  - first matching name wins
  - percent-decoding with a raw fallback for invalid sequences
  - missing, empty, and malformed headers degrade to None
  - set/clear attributes (HttpOnly, SameSite=Lax, Path=/, Secure toggle)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Response

from auth.cookies import clear_session_cookie, parse_cookie_header, set_session_cookie


class TestParseCookieHeader:
    def test_single_cookie(self) -> None:
        assert parse_cookie_header("sid=abc123", "sid") == "abc123"

    def test_among_other_cookies(self) -> None:
        assert parse_cookie_header("theme=dark; sid=abc123; lang=en", "sid") == "abc123"

    def test_first_match_wins(self) -> None:
        assert parse_cookie_header("sid=first; sid=second", "sid") == "first"

    def test_name_must_match_exactly(self) -> None:
        assert parse_cookie_header("xsid=nope; sidx=nope", "sid") is None

    def test_percent_encoded_value(self) -> None:
        assert parse_cookie_header("sid=a%2Bb%3D%3D", "sid") == "a+b=="

    def test_invalid_percent_sequence_kept_raw(self) -> None:
        assert parse_cookie_header("sid=%E0%A4%A", "sid") == "%E0%A4%A"

    def test_quoted_value(self) -> None:
        assert parse_cookie_header('sid="abc"', "sid") == "abc"

    def test_value_may_contain_equals(self) -> None:
        assert parse_cookie_header("sid=a=b", "sid") == "a=b"

    @pytest.mark.parametrize("header", [None, "", "sid=", 'sid=""', "sid", ";;;", "other=1", "=abc"])
    def test_missing_or_empty_is_none(self, header) -> None:
        assert parse_cookie_header(header, "sid") is None

    def test_whitespace_is_tolerated(self) -> None:
        assert parse_cookie_header("  theme=dark ;   sid = abc  ", "sid") == "abc"


class TestSetAndClear:
    def test_set_cookie_attributes(self) -> None:
        resp = Response()
        set_session_cookie(resp, "tok", datetime.now(timezone.utc) + timedelta(days=14), secure=False)
        header = resp.headers["set-cookie"]
        assert header.startswith("sid=tok;")
        assert "HttpOnly" in header
        assert "Path=/" in header
        assert "samesite=lax" in header.lower()
        assert "Secure" not in header

    def test_secure_flag_when_requested(self) -> None:
        resp = Response()
        set_session_cookie(resp, "tok", datetime.now(timezone.utc) + timedelta(days=1), secure=True)
        assert "Secure" in resp.headers["set-cookie"]

    def test_clear_expires_at_epoch(self) -> None:
        resp = Response()
        clear_session_cookie(resp, secure=False)
        header = resp.headers["set-cookie"]
        assert header.startswith('sid="";') or header.startswith("sid=;")
        assert "1970" in header
        assert "HttpOnly" in header
        assert "Path=/" in header
