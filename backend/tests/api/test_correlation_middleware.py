"""Tests for correlation IDs and the global error envelope.

Verifies:
- X-Request-ID header in responses (generated UUID, or the client's value echoed)
- HTTP errors carry {detail, debug_id}
- Unhandled errors return a generic 500 with debug_id and no internals
"""

import uuid

import pytest

from charis.api.deps import get_session_store
from charis.services.session_store import AgentSessionStore
from fakes import broken_session_factory

pytestmark = pytest.mark.integration


def test_response_includes_correlation_id_header(make_client):
    client, _ = make_client()

    response = client.get("/api/health")

    uuid.UUID(response.headers["x-request-id"])


def test_custom_correlation_id_echoed(make_client):
    client, _ = make_client()

    response = client.get("/api/health", headers={"X-Request-ID": "custom-id-123"})

    assert response.headers["x-request-id"] == "custom-id-123"


def test_different_requests_get_different_ids(make_client):
    client, _ = make_client()

    first = client.get("/api/health").headers["x-request-id"]
    second = client.get("/api/health").headers["x-request-id"]

    assert first != second


def test_unhandled_error_returns_generic_500(make_client):
    client, _ = make_client(raise_server_exceptions=False)
    client.app.dependency_overrides[get_session_store] = lambda: AgentSessionStore(broken_session_factory)

    response = client.get("/api/agent/sessions/any")

    assert response.status_code == 500
    body = response.json()
    assert body["detail"] == "Internal server error"
    uuid.UUID(body["debug_id"])
    assert "database unavailable" not in response.text
    assert "traceback" not in response.text.lower()
