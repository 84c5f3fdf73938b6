"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database key present and reports "ok"
  - No authentication required
  - components.database reports "error" when the store ping fails or raises
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert "components" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_response_includes_database_component(api_client):
    """Health response components dict includes database status."""
    client, _, _ = api_client
    data = client.get("/api/v1/health").json()
    assert "database" in data["components"]
    assert data["components"]["database"] in ("ok", "error")


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    # Explicitly make request with no auth headers
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_health_reports_database_error(api_client, monkeypatch):
    """A failing store ping is reported as components.database == 'error', not a 500."""
    client, _, store = api_client

    def broken_ping() -> bool:
        raise RuntimeError("database unreachable")

    monkeypatch.setattr(store, "ping", broken_ping)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["components"]["database"] == "error"
    assert data["components"]["app"] == "ok"


def test_health_reports_database_error_on_false_ping(api_client, monkeypatch):
    """A ping that answers but does not return 1 is also an error."""
    client, _, store = api_client
    monkeypatch.setattr(store, "ping", lambda: False)
    assert client.get("/api/v1/health").json()["components"]["database"] == "error"
