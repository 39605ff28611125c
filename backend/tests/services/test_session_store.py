"""Tests for AgentSessionStore.

Tests:
1. start creates a running row; a second start resets it
2. advance never moves progress backward and caps running progress at 95
3. merge_metadata keeps existing keys
4. finalize(completed) sets progress 100 and completed_at; a second finalize is ignored
5. finalize(failed) keeps progress; missing session is a no-op
6. Write failures are non-fatal; reads propagate
7. fail_stale marks only old running sessions as failed
8. iteration_progress formula
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update

from charis.db.models import AgentSession
from charis.services.session_store import AgentSessionStore, iteration_progress
from fakes import broken_session_factory

pytestmark = pytest.mark.integration

SESSION = "sess-state"


def test_iteration_progress():
    assert iteration_progress(1) == 11
    assert iteration_progress(2) == 17
    assert iteration_progress(15) == 95
    assert iteration_progress(40) == 95


async def test_start_creates_and_restarts(session_factory):
    store = AgentSessionStore(session_factory)

    await store.start(SESSION, "user-1", "Ad Audit: Acme", {"model": "m"})
    await store.advance(SESSION, 40, "iteration_6")
    await store.finalize(SESSION, "failed")
    await store.start(SESSION, "user-1", "Agent Task", {"model": "m2"})

    row = await store.get(SESSION)
    assert row["state"] == "running"
    assert row["progress"] == 0
    assert row["current_step"] == "initializing"
    assert row["title"] == "Agent Task"
    assert row["metadata"] == {"model": "m2"}
    assert row["completed_at"] is None


async def test_advance_is_monotonic_and_capped(session_factory):
    store = AgentSessionStore(session_factory)
    await store.start(SESSION, "user-1", "t")

    await store.advance(SESSION, 41, "iteration_6")
    await store.advance(SESSION, 20, "iteration_7")
    assert (await store.get(SESSION))["progress"] == 41
    assert (await store.get(SESSION))["current_step"] == "iteration_7"

    await store.advance(SESSION, 100, "iteration_8")
    assert (await store.get(SESSION))["progress"] == 95


async def test_merge_metadata(session_factory):
    store = AgentSessionStore(session_factory)
    await store.start(SESSION, "user-1", "t", {"model": "m", "brand_name": "Acme"})

    await store.merge_metadata(SESSION, {"plan": {"reasoning": "r"}})

    assert (await store.get(SESSION))["metadata"] == {"model": "m", "brand_name": "Acme", "plan": {"reasoning": "r"}}


async def test_finalize_completed_once(session_factory):
    store = AgentSessionStore(session_factory)
    await store.start(SESSION, "user-1", "t", {"model": "m"})
    await store.advance(SESSION, 29, "iteration_4")

    await store.finalize(SESSION, "completed", {"iterations": 4})
    first = await store.get(SESSION)
    await store.finalize(SESSION, "failed", {"error": "late"})
    second = await store.get(SESSION)

    assert first["state"] == "completed"
    assert first["progress"] == 100
    assert first["current_step"] == "completed"
    assert first["completed_at"] is not None
    assert first["metadata"] == {"model": "m", "iterations": 4}
    assert second == first


async def test_finalize_failed_keeps_progress(session_factory):
    store = AgentSessionStore(session_factory)
    await store.start(SESSION, "user-1", "t")
    await store.advance(SESSION, 23, "iteration_3")

    await store.finalize(SESSION, "failed", {"error": "Rate limited. Please wait and try again."})

    row = await store.get(SESSION)
    assert row["state"] == "failed"
    assert row["progress"] == 23
    assert row["metadata"]["error"] == "Rate limited. Please wait and try again."


async def test_missing_session_writes_are_noops(session_factory):
    store = AgentSessionStore(session_factory)
    await store.advance("nope", 10, "x")
    await store.merge_metadata("nope", {"a": 1})
    await store.finalize("nope", "completed")
    assert await store.get("nope") is None


async def test_write_failures_are_non_fatal_reads_propagate():
    store = AgentSessionStore(broken_session_factory)

    await store.start(SESSION, "user-1", "t")
    await store.advance(SESSION, 10, "x")
    await store.finalize(SESSION, "completed")

    with pytest.raises(ConnectionError):
        await store.get(SESSION)


async def test_fail_stale(session_factory):
    store = AgentSessionStore(session_factory)
    await store.start("old", "user-1", "t")
    await store.start("fresh", "user-1", "t")
    await store.start("done", "user-1", "t")
    await store.finalize("done", "completed")

    long_ago = datetime.now(UTC) - timedelta(hours=2)
    async with session_factory() as db:
        await db.execute(update(AgentSession).where(AgentSession.id.in_(["old", "done"])).values(updated_at=long_ago))
        await db.commit()

    count = await store.fail_stale(datetime.now(UTC) - timedelta(minutes=30))

    assert count == 1
    assert (await store.get("old"))["state"] == "failed"
    assert (await store.get("fresh"))["state"] == "running"
    assert (await store.get("done"))["state"] == "completed"
    assert [r["id"] for r in await store.list_running()] == ["fresh"]
