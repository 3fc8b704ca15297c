"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against a reachable database
  - a failed or timed-out probe reports 'error' with 503
  - No authentication required
"""

from __future__ import annotations

import api.main
from db.engine import DatabaseProbeTimeout


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == api.main.__version__
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without a session cookie."""
    resp = api_client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_reports_probe_timeout(api_client, monkeypatch):
    """A hung database shows up as a degraded component, not a hung request."""

    async def slow_probe(engine, timeout_ms):
        raise DatabaseProbeTimeout(f"Database probe timed out after {timeout_ms}ms")

    monkeypatch.setattr(api.main, "probe_database", slow_probe)
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"] == {"app": "ok", "database": "error"}


def test_health_reports_unreachable_database(api_client, monkeypatch):
    async def refused_probe(engine, timeout_ms):
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(api.main, "probe_database", refused_probe)
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 503
    assert resp.json()["components"]["database"] == "error"
