"""Route tests for the session read endpoints and health checks.

Tests:
1. GET /api/agent/sessions/{id} returns the session row; unknown -> 404 with debug_id
2. GET .../logs returns rows in insertion order
3. GET .../messages returns the user and assistant transcript
4. GET .../logs/stream for a finished session emits a done event and closes
5. Every inserted log row was appended to the session's Redis Stream
6. GET /api/health -> healthy, 503 while shutting down
7. GET /api/ready reports degraded checks when the shared pools are down
"""

import json

import pytest

from charis.db.redis import stream_key
from fakes import parse_sse, text_turn, tool_turn

pytestmark = pytest.mark.integration

SESSION = "s-read"
FINISH = {"summary": "Done", "results_delivered": True}


def _run(client, session_id: str = SESSION):
    response = client.post(
        "/api/agent/stream",
        json={"sessionId": session_id, "userId": "u1", "prompt": "Audit Acme", "brandName": "Acme"},
    )
    assert response.status_code == 200
    return response


def test_get_session(make_client):
    client, _ = make_client([tool_turn(("finish", FINISH))])
    _run(client)

    body = client.get(f"/api/agent/sessions/{SESSION}").json()

    assert body["id"] == SESSION
    assert body["user_id"] == "u1"
    assert body["state"] == "completed"
    assert body["title"] == "Ad Audit: Acme"
    assert body["metadata"]["brand_name"] == "Acme"


def test_get_unknown_session_is_404(make_client):
    client, _ = make_client()

    response = client.get("/api/agent/sessions/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"
    assert "debug_id" in response.json()


def test_get_logs_in_order(make_client):
    client, _ = make_client([tool_turn(("finish", FINISH))])
    _run(client)

    body = client.get(f"/api/agent/sessions/{SESSION}/logs").json()

    assert body["session_id"] == SESSION
    assert [(r["step_name"], r["status"]) for r in body["logs"]] == [
        ("Reasoning Step 1", "started"),
        ("Reasoning Step 1", "completed"),
        ("Execute: finish", "started"),
        ("Execute: finish", "completed"),
        ("Task Complete", "completed"),
    ]


def test_get_messages(make_client):
    text = "Acme leans on founder-led UGC. " * 12
    client, _ = make_client([text_turn(text)])
    _run(client)

    body = client.get(f"/api/agent/sessions/{SESSION}/messages").json()

    assert [m["role"] for m in body["messages"]] == ["user", "assistant"]
    assert body["messages"][0]["content"] == "Audit Acme"
    assert body["messages"][1]["content"] == text
    assert body["messages"][1]["is_streaming"] is False


def test_logs_for_unknown_session_is_404(make_client):
    client, _ = make_client()
    assert client.get("/api/agent/sessions/missing/logs").status_code == 404
    assert client.get("/api/agent/sessions/missing/messages").status_code == 404
    assert client.get("/api/agent/sessions/missing/logs/stream").status_code == 404


def test_log_stream_for_finished_session_emits_done(make_client):
    client, _ = make_client([tool_turn(("finish", FINISH))])
    _run(client)

    response = client.get(f"/api/agent/sessions/{SESSION}/logs/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = parse_sse(response.text)
    assert frames[-1] == 'event: done\ndata: {"state": "completed"}'


def test_log_rows_are_appended_to_redis_stream(make_client):
    client, _ = make_client([tool_turn(("finish", FINISH))])
    _run(client)
    redis = client.app.state.redis

    entries = client.portal.call(redis.xrange, stream_key(SESSION))

    rows = [json.loads(fields["entry"]) for _, fields in entries]
    assert [r["step_name"] for r in rows][-1] == "Task Complete"
    assert len(rows) == 5


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_health(make_client):
    client, _ = make_client()

    assert client.get("/api/health").json() == {"status": "healthy", "service": "charis-agent"}

    client.app.state.shutting_down = True
    response = client.get("/api/health")
    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


def test_ready_reports_degraded_without_pools(make_client):
    client, _ = make_client()

    response = client.get("/api/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "degraded", "checks": {"database": False, "redis": False}}
