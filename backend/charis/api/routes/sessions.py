"""Read endpoints for a session: row, logs (polling + live SSE), transcript."""

import asyncio
import json
import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from charis.api.deps import get_log_store, get_session_store, get_transcript_store
from charis.db.models.agent_session import SessionState
from charis.db.redis import get_redis, read_log_entries
from charis.services.execution_log import ExecutionLogStore
from charis.services.session_store import AgentSessionStore
from charis.services.transcript import ChatTranscriptStore

logger = structlog.get_logger(__name__)

router = APIRouter()

_HEARTBEAT_INTERVAL = 15  # seconds
_POLL_BLOCK_MS = 500  # milliseconds for xread blocking poll
_DRAIN_COUNT = 200  # max entries to drain on terminal state


async def _require_session(session_id: str, sessions: AgentSessionStore) -> dict:
    session = await sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.get("/{session_id}")
async def get_session(session_id: str, sessions: AgentSessionStore = Depends(get_session_store)):
    return await _require_session(session_id, sessions)


@router.get("/{session_id}/logs")
async def get_session_logs(
    session_id: str,
    sessions: AgentSessionStore = Depends(get_session_store),
    logs: ExecutionLogStore = Depends(get_log_store),
):
    """Full execution log for a session in insertion order (polling fallback)."""
    await _require_session(session_id, sessions)
    return {"session_id": session_id, "logs": await logs.list_for_session(session_id)}


@router.get("/{session_id}/messages")
async def get_session_messages(
    session_id: str,
    sessions: AgentSessionStore = Depends(get_session_store),
    transcripts: ChatTranscriptStore = Depends(get_transcript_store),
):
    await _require_session(session_id, sessions)
    return {"session_id": session_id, "messages": await transcripts.list_for_session(session_id)}


@router.get("/{session_id}/logs/stream")
async def stream_session_logs(
    session_id: str,
    request: Request,
    sessions: AgentSessionStore = Depends(get_session_store),
    redis=Depends(get_redis),
):
    """Stream execution-log inserts live via SSE.

    Late joiners see only new rows (last_id='$'); use ``/logs`` for history.
    Sends heartbeat events, and a ``done`` event once the session reaches a
    terminal state (after draining what is left in the stream).

    Raises:
        HTTPException(404): unknown session
    """
    await _require_session(session_id, sessions)

    async def event_generator():
        last_id = "$"
        last_heartbeat = time.monotonic()

        while True:
            if await request.is_disconnected():
                return

            now = time.monotonic()
            if now - last_heartbeat >= _HEARTBEAT_INTERVAL:
                yield "event: heartbeat\ndata: {}\n\n"
                last_heartbeat = now

            session = await sessions.get(session_id)
            state = session["state"] if session else None
            if state in SessionState.TERMINAL:
                try:
                    for row in await read_log_entries(redis, session_id, last_id, count=_DRAIN_COUNT):
                        yield f"event: log\ndata: {json.dumps(row)}\n\n"
                        last_id = row["stream_id"]
                except Exception as exc:
                    logger.warning("log_stream_drain_failed", session_id=session_id, error=str(exc))
                yield f"event: done\ndata: {json.dumps({'state': state})}\n\n"
                return

            try:
                rows = await read_log_entries(redis, session_id, last_id, count=100, block_ms=_POLL_BLOCK_MS)
                for row in rows:
                    yield f"event: log\ndata: {json.dumps(row)}\n\n"
                    last_id = row["stream_id"]
            except Exception as exc:
                logger.debug("log_stream_poll_failed", session_id=session_id, error=str(exc))
                await asyncio.sleep(0.5)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
