"""AgentOrchestrator: ReAct (Reason-Act-Observe) loop for ad-research runs.

Wires together:
- LLMGatewayClient: streams each reasoning turn (tokens + tool-call fragments)
- ToolCallAccumulator: assembles fragments into complete tool calls
- ToolExecutor: runs each call, logging and emitting step events
- IterationGuard: iteration cap, repetition detection, observation truncation
- AgentSessionStore / ExecutionLogStore / ChatTranscriptStore: persistence
- EventStream: ordered SSE events to the client

A run always ends in exactly one ``_finalize`` call: ``completed`` when the
model calls ``finish`` (or the implicit-completion policy fires, or the turn
budget runs out), ``cancelled`` when the cancel token fires, ``failed`` for
anything else. Finalization closes the stream, which emits ``[DONE]``.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from charis.agent.events import EventType
from charis.agent.llm.accumulator import DroppedToolCall, ToolCall, ToolCallAccumulator
from charis.agent.llm.gateway import LLMGatewayClient, TokenDelta, ToolCallDelta
from charis.agent.loop.cancel import CancelToken
from charis.agent.loop.completion import CompletionPolicy
from charis.agent.loop.safety import IterationGuard, RepetitionError
from charis.agent.loop.system_prompt import build_initial_messages
from charis.agent.stream import EventStream
from charis.agent.tools.definitions import AGENT_TOOLS, PLANNING_TOOL, TERMINAL_TOOL, tool_icon
from charis.agent.tools.dispatcher import ToolContext, ToolExecutor
from charis.agent.tools.results import PlanResult, failure_result
from charis.core.config import Settings
from charis.core.exceptions import LLMGatewayError, RunCancelledError
from charis.db.models.agent_session import SessionState
from charis.db.models.execution_log import LogStatus
from charis.services.execution_log import ExecutionLogStore
from charis.services.session_store import AgentSessionStore, iteration_progress
from charis.services.transcript import AssistantMessageWriter, ChatTranscriptStore

logger = structlog.get_logger(__name__)

FALLBACK_CONTENT = "Analysis complete. Check the results in the workspace."
REASONING_ICON = "🧠"
INIT_ICON = "🚀"


@dataclass
class AgentRunRequest:
    session_id: str
    user_id: str
    prompt: str
    brand_name: str | None = None
    attached_urls: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return f"Ad Audit: {self.brand_name}" if self.brand_name else "Agent Task"


@dataclass
class RunOutcome:
    session_id: str
    status: str
    iterations: int
    plan: dict[str, Any] | None
    final_content: str
    error: str | None = None
    stop_reason: str | None = None


@dataclass
class _RunState:
    request: AgentRunRequest
    stream: EventStream
    cancel: CancelToken
    guard: IterationGuard
    messages: list[dict[str, Any]]
    started: float = field(default_factory=time.monotonic)
    writer: AssistantMessageWriter | None = None
    plan: dict[str, Any] | None = None
    full_content: str = ""
    progress: int = 0
    complete: bool = False
    stop_reason: str | None = None
    finalized: bool = False

    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


def _user_facing_error(exc: Exception) -> str:
    if isinstance(exc, LLMGatewayError):
        return exc.message
    return str(exc) or type(exc).__name__


class AgentOrchestrator:
    """Process-scoped; one instance serves many concurrent runs.

    All per-run state lives in ``_RunState``, so nothing here is shared
    between runs except the injected collaborators.
    """

    def __init__(
        self,
        gateway: LLMGatewayClient,
        executor: ToolExecutor,
        sessions: AgentSessionStore,
        logs: ExecutionLogStore,
        transcripts: ChatTranscriptStore,
        settings: Settings,
    ) -> None:
        self._gateway = gateway
        self._executor = executor
        self._sessions = sessions
        self._logs = logs
        self._transcripts = transcripts
        self._settings = settings
        self._policy = CompletionPolicy(
            enabled=settings.implicit_completion_enabled,
            min_chars=settings.implicit_completion_chars,
            max_iterations=settings.agent_max_iterations,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        request: AgentRunRequest,
        stream: EventStream,
        cancel: CancelToken | None = None,
    ) -> RunOutcome:
        state = _RunState(
            request=request,
            stream=stream,
            cancel=cancel or CancelToken(),
            guard=IterationGuard(
                max_iterations=self._settings.agent_max_iterations,
                result_word_limit=self._settings.max_tool_result_words,
            ),
            messages=build_initial_messages(request.prompt, request.brand_name, request.attached_urls),
        )
        bound_logger = logger.bind(session_id=request.session_id)
        bound_logger.info("agent_run_start", model=self._gateway.model, max_iterations=state.guard.max_iterations)

        error: str | None = None
        try:
            await self._initialize(state)
            await self._loop(state)
            status = SessionState.COMPLETED
        except RunCancelledError as exc:
            status = SessionState.CANCELLED
            error = str(exc)
            bound_logger.info("agent_run_cancelled", reason=error, iteration=state.guard.iteration)
        except asyncio.CancelledError:
            await self._finalize(state, SessionState.CANCELLED, "Run task cancelled")
            raise
        except Exception as exc:
            status = SessionState.FAILED
            error = _user_facing_error(exc)
            bound_logger.error(
                "agent_run_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                iteration=state.guard.iteration,
            )

        final_content = await self._finalize(state, status, error)
        return RunOutcome(
            session_id=request.session_id,
            status=status,
            iterations=state.guard.iteration,
            plan=state.plan,
            final_content=final_content,
            error=error,
            stop_reason=state.stop_reason,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _initialize(self, state: _RunState) -> None:
        req = state.request
        await state.stream.send(
            EventType.SESSION_START,
            {"sessionId": req.session_id, "model": self._gateway.model},
        )
        await self._sessions.start(
            req.session_id,
            req.user_id,
            req.title,
            {
                "model": self._gateway.model,
                "started_at": datetime.now(UTC).isoformat(),
                "brand_name": req.brand_name,
            },
        )
        await self._transcripts.add_user_message(
            req.session_id,
            req.prompt,
            {"attachedUrls": req.attached_urls, "brandName": req.brand_name},
        )
        state.writer = await self._transcripts.open_assistant_message(req.session_id)

        init = {"step": "Initializing Agent", "toolIcon": INIT_ICON}
        await state.stream.send(EventType.STEP_START, {**init, "message": "Starting autonomous analysis..."})
        await state.stream.send(EventType.STEP_END, {**init, "success": True})

    async def _loop(self, state: _RunState) -> None:
        bound_logger = logger.bind(session_id=state.request.session_id)

        while not state.complete and not state.guard.exhausted:
            state.cancel.raise_if_cancelled()

            iteration = state.guard.start_iteration()
            state.progress = iteration_progress(iteration)
            await self._sessions.advance(state.request.session_id, state.progress, f"iteration_{iteration}")

            label = f"Agent Reasoning (Iteration {iteration})"
            await state.stream.send(
                EventType.STEP_START,
                {
                    "step": label,
                    "toolIcon": REASONING_ICON,
                    "progress": state.progress,
                    "iteration": iteration,
                    "message": "Thinking about next action...",
                },
                node="model",
                step=label,
            )
            step = await self._logs.begin_step(
                state.request.session_id,
                f"Reasoning Step {iteration}",
                tool_name="llm",
                input_data={"iteration": iteration},
                tool_icon=REASONING_ICON,
                progress=state.progress,
            )

            try:
                turn_text, calls, dropped = await self._reason(state)
            except asyncio.CancelledError:
                await step.fail("Cancelled", progress=state.progress)
                raise
            except Exception as exc:
                await step.fail(_user_facing_error(exc), progress=state.progress)
                raise

            assistant_message: dict[str, Any] = {"role": "assistant", "content": turn_text}
            if calls:
                assistant_message["tool_calls"] = [c.to_openai() for c in calls]
            state.messages.append(assistant_message)

            for d in dropped:
                bound_logger.warning(
                    "tool_call_dropped",
                    iteration=iteration,
                    index=d.index,
                    tool_name=d.name,
                    reason=d.reason,
                    raw_arguments=d.raw_arguments[:200],
                )

            await state.stream.send(
                EventType.STEP_END,
                {
                    "step": label,
                    "toolIcon": REASONING_ICON,
                    "hasToolCalls": bool(calls),
                    "toolNames": [c.name for c in calls],
                    "droppedToolCalls": [_dropped_summary(d) for d in dropped],
                },
                node="model",
                step=label,
            )
            await step.complete(
                output={
                    "hasToolCalls": bool(calls),
                    "toolCount": len(calls),
                    "droppedCount": len(dropped),
                    "contentLength": len(turn_text),
                },
                progress=state.progress,
            )

            if calls:
                await self._act(state, calls)
            elif not dropped and self._policy.is_implicitly_complete(turn_text, iteration):
                state.complete = True
                state.stop_reason = "implicit"
                bound_logger.info("agent_run_implicit_completion", iteration=iteration, length=len(turn_text))

        if not state.complete:
            state.stop_reason = "max_iterations"
            bound_logger.warning("agent_run_iteration_cap", max_iterations=state.guard.max_iterations)

    async def _reason(self, state: _RunState) -> tuple[str, list[ToolCall], list[DroppedToolCall]]:
        """Stream one assistant turn; returns (turn text, calls, dropped calls)."""
        accumulator = ToolCallAccumulator(turn_ts=int(time.time() * 1000))
        turn_text = ""

        async for event in self._gateway.stream_chat(state.messages, AGENT_TOOLS):
            if isinstance(event, TokenDelta):
                turn_text += event.token
                state.full_content += event.token
                await state.stream.send(
                    EventType.TOKEN,
                    {"token": event.token, "fullContent": state.full_content},
                    node="model",
                )
                if state.writer is not None:
                    await state.writer.append(event.token)
            elif isinstance(event, ToolCallDelta):
                accumulator.add(event)

        calls, dropped = accumulator.finalize()
        return turn_text, calls, dropped

    async def _act(self, state: _RunState, calls: list[ToolCall]) -> None:
        req = state.request
        bound_logger = logger.bind(session_id=req.session_id, iteration=state.guard.iteration)

        for index, call in enumerate(calls):
            if state.cancel.cancelled:
                await self._skip_remaining(state, calls[index:], "Run cancelled before execution")
                state.cancel.raise_if_cancelled()

            try:
                state.guard.check_repetition(call.name, call.arguments)
            except RepetitionError as exc:
                bound_logger.warning("tool_call_repetition_skipped", tool_name=call.name, count=exc.count)
                await self._logs.skip(
                    req.session_id,
                    f"Execute: {call.name}",
                    str(exc),
                    tool_name=call.name,
                    input_data=call.arguments,
                    tool_icon=tool_icon(call.name),
                )
                observation = failure_result(call.name, str(exc), "invalid_input").to_observation()
                self._observe(state, call, observation)
                continue

            result = await self._executor.execute(
                call,
                ToolContext(
                    session_id=req.session_id,
                    user_id=req.user_id,
                    stream=state.stream,
                    progress=state.progress,
                ),
            )
            self._observe(state, call, result.to_observation())

            if call.name == PLANNING_TOOL and result.success and isinstance(result, PlanResult) and result.plan:
                state.plan = result.plan.model_dump()
                await self._sessions.merge_metadata(req.session_id, {"plan": state.plan})
                await state.stream.send(
                    EventType.PLAN_CREATED,
                    {"plan": state.plan, "steps": state.plan.get("execution_plan", [])},
                )

            if call.name == TERMINAL_TOOL and result.success:
                state.complete = True
                state.stop_reason = "finish"
                if index + 1 < len(calls):
                    await self._skip_remaining(state, calls[index + 1 :], "Run finished before execution")
                break

    def _observe(self, state: _RunState, call: ToolCall, observation: dict[str, Any]) -> None:
        content = state.guard.truncate_tool_result(json.dumps(observation, default=str))
        state.messages.append({"role": "tool", "tool_call_id": call.id, "content": content})

    async def _skip_remaining(self, state: _RunState, calls: list[ToolCall], reason: str) -> None:
        for call in calls:
            await self._logs.skip(
                state.request.session_id,
                f"Execute: {call.name}",
                reason,
                tool_name=call.name,
                input_data=call.arguments,
                tool_icon=tool_icon(call.name),
            )

    async def _finalize(self, state: _RunState, status: str, error: str | None) -> str:
        """Close out the run exactly once. Returns the final assistant content."""
        if state.finalized:
            return state.writer.content if state.writer else state.full_content
        state.finalized = True

        req = state.request
        duration_ms = state.duration_ms()
        iterations = state.guard.iteration
        try:
            final_content = await state.writer.finalize(FALLBACK_CONTENT) if state.writer else FALLBACK_CONTENT

            metadata: dict[str, Any] = {
                "model": self._gateway.model,
                "duration_ms": duration_ms,
                "iterations": iterations,
                "plan": state.plan,
                "stop_reason": state.stop_reason,
            }
            if error:
                metadata["error"] = error
            await self._sessions.finalize(req.session_id, status, metadata)

            if status == SessionState.FAILED:
                await state.stream.send(EventType.ERROR, {"sessionId": req.session_id, "error": error})
            else:
                await state.stream.send(
                    EventType.SESSION_END,
                    {
                        "sessionId": req.session_id,
                        "status": status,
                        "durationMs": duration_ms,
                        "iterations": iterations,
                        **({"reason": error} if error else {}),
                    },
                )

            if status == SessionState.COMPLETED:
                await self._logs.insert(
                    req.session_id,
                    "Task Complete",
                    LogStatus.COMPLETED,
                    tool_name=TERMINAL_TOOL,
                    input_data={"tool_icon": tool_icon(TERMINAL_TOOL), "progress_percent": 100},
                    output_data={"iterations": iterations, "durationMs": duration_ms},
                    duration_ms=duration_ms,
                )
        finally:
            await state.stream.close()

        logger.info(
            "agent_run_finalized",
            session_id=req.session_id,
            status=status,
            iterations=iterations,
            duration_ms=duration_ms,
            stop_reason=state.stop_reason,
            events_dropped=state.stream.dropped,
        )
        return final_content


def _dropped_summary(d: DroppedToolCall) -> dict[str, Any]:
    return {"index": d.index, "name": d.name, "reason": d.reason}
