"""Tests for ExecutionLogStore.

Tests:
1. insert writes a row and XADDs it to session:{id}:logs with a TTL
2. begin_step adds step_id/tool_icon/progress/sub_step; complete writes one terminal row
3. A second terminal call on the same step is ignored
4. skip writes a standalone skipped row with the reason
5. Insert failure is non-fatal (returns None, nothing appended)
6. Redis failure is non-fatal (row still written)
7. Non-serializable output values are stringified
8. list_for_session returns rows in insertion order, scoped to the session
"""

import json
from datetime import datetime

import pytest

from charis.db.redis import STREAM_TTL_SECONDS, stream_key
from charis.services.execution_log import ExecutionLogStore
from fakes import broken_session_factory

pytestmark = pytest.mark.integration

SESSION = "sess-logs"


class _BrokenPipeline:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    def xadd(self, *args, **kwargs):
        return self

    def expire(self, *args, **kwargs):
        return self

    async def execute(self):
        raise ConnectionError("redis down")


class _BrokenRedis:
    def pipeline(self, transaction=True):
        return _BrokenPipeline()


async def test_insert_appends_to_stream(session_factory, fake_redis):
    store = ExecutionLogStore(session_factory, redis=fake_redis)

    row = await store.insert(SESSION, "Initializing", "completed", tool_name="llm", duration_ms=5)

    assert row["session_id"] == SESSION
    assert row["status"] == "completed"
    entries = await fake_redis.xrange(stream_key(SESSION))
    assert len(entries) == 1
    _, fields = entries[0]
    assert json.loads(fields["entry"])["id"] == row["id"]
    ttl = await fake_redis.ttl(stream_key(SESSION))
    assert 0 < ttl <= STREAM_TTL_SECONDS


def test_stream_key():
    assert stream_key("abc") == "session:abc:logs"


async def test_begin_and_complete_step(session_factory):
    store = ExecutionLogStore(session_factory)

    step = await store.begin_step(
        SESSION,
        "Execute: search_web",
        tool_name="search_web",
        input_data={"query": "acme"},
        tool_icon="🔎",
        progress=23,
        sub_step='Searching: "acme"...',
    )
    await step.complete(output={"resultsFound": 2}, progress=23)

    rows = await store.list_for_session(SESSION)
    assert [r["status"] for r in rows] == ["started", "completed"]
    started, completed = rows
    assert started["input_data"] == {
        "query": "acme",
        "step_id": step.step_id,
        "tool_icon": "🔎",
        "progress_percent": 23,
        "sub_step": 'Searching: "acme"...',
    }
    assert completed["input_data"]["step_id"] == step.step_id
    assert completed["output_data"] == {"resultsFound": 2}
    assert completed["duration_ms"] >= 0
    assert step.finished


async def test_second_terminal_call_is_ignored(session_factory):
    store = ExecutionLogStore(session_factory)
    step = await store.begin_step(SESSION, "Reasoning Step 1", tool_name="llm")

    await step.fail("boom")
    await step.complete()

    rows = await store.list_for_session(SESSION)
    assert [r["status"] for r in rows] == ["started", "failed"]
    assert rows[1]["error_message"] == "boom"


async def test_skip_row(session_factory):
    store = ExecutionLogStore(session_factory)

    await store.skip(SESSION, "Execute: finish", "Run cancelled before execution", tool_name="finish", tool_icon="✅")

    (row,) = await store.list_for_session(SESSION)
    assert row["status"] == "skipped"
    assert row["error_message"] == "Run cancelled before execution"
    assert row["duration_ms"] == 0
    assert row["input_data"]["tool_icon"] == "✅"
    assert "step_id" in row["input_data"]


async def test_insert_failure_is_non_fatal(fake_redis):
    store = ExecutionLogStore(broken_session_factory, redis=fake_redis)

    assert await store.insert(SESSION, "x", "started") is None
    step = await store.begin_step(SESSION, "y")
    await step.complete()

    assert await fake_redis.exists(stream_key(SESSION)) == 0


async def test_redis_failure_is_non_fatal(session_factory):
    store = ExecutionLogStore(session_factory, redis=_BrokenRedis())

    row = await store.insert(SESSION, "x", "started")

    assert row is not None
    assert len(await store.list_for_session(SESSION)) == 1


async def test_output_is_made_json_safe(session_factory):
    store = ExecutionLogStore(session_factory)
    when = datetime(2026, 1, 2, 3, 4, 5)

    row = await store.insert(SESSION, "x", "completed", output_data={"at": when})

    assert row["output_data"] == {"at": str(when)}


async def test_list_is_ordered_and_scoped(session_factory):
    store = ExecutionLogStore(session_factory)
    for i in range(3):
        await store.insert(SESSION, f"step {i}", "started")
    await store.insert("other-session", "noise", "started")

    rows = await store.list_for_session(SESSION)
    assert [r["step_name"] for r in rows] == ["step 0", "step 1", "step 2"]
