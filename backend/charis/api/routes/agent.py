"""Agent run endpoints: start a streamed run, cancel a run."""

import asyncio
import time
import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from charis.agent.events import DONE_FRAME
from charis.agent.loop.cancel import CancelToken
from charis.agent.loop.system_prompt import default_prompt
from charis.agent.orchestrator import AgentOrchestrator, AgentRunRequest
from charis.agent.stream import EventStream
from charis.api.deps import (
    get_app_settings,
    get_log_store,
    get_orchestrator,
    get_run_registry,
    get_session_store,
)
from charis.api.schemas.agent import AgentStreamRequest, CancelResponse
from charis.core.config import Settings
from charis.db.models.agent_session import SessionState
from charis.services.execution_log import ExecutionLogStore
from charis.services.run_registry import RunRegistry
from charis.services.session_store import AgentSessionStore

logger = structlog.get_logger(__name__)

router = APIRouter()

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/stream")
async def stream_agent_run(
    body: AgentStreamRequest,
    request: Request,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
    registry: RunRegistry = Depends(get_run_registry),
    settings: Settings = Depends(get_app_settings),
):
    """Start an autonomous agent run and stream its events as SSE.

    The run executes as a background task that outlives the response: if the
    client disconnects the stream detaches (events are dropped) and the run
    finishes on its own, unless CANCEL_ON_DISCONNECT is set.

    Raises:
        HTTPException(409): a run for this session is already active in this process
    """
    session_id = body.session_id or str(uuid.uuid4())
    if registry.is_running(session_id):
        raise HTTPException(status_code=409, detail="A run for this session is already active")

    prompt = body.prompt.strip() if body.prompt and body.prompt.strip() else default_prompt(body.brand_name)
    run_request = AgentRunRequest(
        session_id=session_id,
        user_id=body.user_id,
        prompt=prompt,
        brand_name=body.brand_name,
        attached_urls=[u.url for u in body.attached_urls],
    )

    stream = EventStream(maxsize=settings.event_queue_size)
    cancel = CancelToken()
    task = asyncio.create_task(orchestrator.run(run_request, stream, cancel), name=f"agent-run-{session_id}")
    registry.register(session_id, task, cancel)
    logger.info("agent_stream_started", session_id=session_id, user_id=body.user_id)

    async def event_generator():
        done = False
        last_heartbeat = time.monotonic()
        try:
            while True:
                if await request.is_disconnected():
                    return

                frame = await stream.next_frame(timeout=settings.sse_heartbeat_seconds)
                now = time.monotonic()
                if frame is None or now - last_heartbeat >= settings.sse_heartbeat_seconds:
                    yield ": heartbeat\n\n"
                    last_heartbeat = now
                if frame is None:
                    continue

                yield frame
                if frame == DONE_FRAME:
                    done = True
                    return
        finally:
            if not done:
                stream.detach()
                logger.info("agent_stream_client_disconnected", session_id=session_id)
                if settings.cancel_on_disconnect:
                    registry.cancel(session_id, "Client disconnected")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={**_SSE_HEADERS, "X-Session-ID": session_id},
    )


@router.post("/sessions/{session_id}/cancel", response_model=CancelResponse, response_model_by_alias=True)
async def cancel_agent_run(
    session_id: str,
    registry: RunRegistry = Depends(get_run_registry),
    sessions: AgentSessionStore = Depends(get_session_store),
    logs: ExecutionLogStore = Depends(get_log_store),
):
    """Cancel a run.

    An in-process run is signalled through its cancel token and finalizes
    itself. A session left ``running`` with no live run here (orphaned by a
    restart, or owned by another worker) is marked ``cancelled`` directly.

    Raises:
        HTTPException(404): unknown session
        HTTPException(409): session already finished
    """
    if registry.cancel(session_id, "Cancelled by user"):
        return CancelResponse(session_id=session_id, status="cancelling", message="Cancellation requested")

    session = await sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if session["state"] in SessionState.TERMINAL:
        raise HTTPException(status_code=409, detail=f"Session already {session['state']}")

    await sessions.finalize(session_id, SessionState.CANCELLED, {"cancel_reason": "User cancelled session"})
    await logs.skip(session_id, "cancelled", "User cancelled session")
    logger.info("agent_session_cancelled_without_run", session_id=session_id)
    return CancelResponse(session_id=session_id, status=SessionState.CANCELLED, message="Agent session cancelled")
