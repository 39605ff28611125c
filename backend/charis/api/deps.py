"""FastAPI dependencies resolving the process-scoped agent runtime."""

from fastapi import Request

from charis.agent.orchestrator import AgentOrchestrator
from charis.agent.runtime import AgentRuntime
from charis.core.config import Settings, get_settings
from charis.services.execution_log import ExecutionLogStore
from charis.services.run_registry import RunRegistry
from charis.services.session_store import AgentSessionStore
from charis.services.transcript import ChatTranscriptStore


def get_runtime(request: Request) -> AgentRuntime:
    runtime = getattr(request.app.state, "agent", None)
    if runtime is None:
        raise RuntimeError("Agent runtime not initialized.")
    return runtime


def get_orchestrator(request: Request) -> AgentOrchestrator:
    return get_runtime(request).orchestrator


def get_run_registry(request: Request) -> RunRegistry:
    return get_runtime(request).registry


def get_session_store(request: Request) -> AgentSessionStore:
    return get_runtime(request).sessions


def get_log_store(request: Request) -> ExecutionLogStore:
    return get_runtime(request).logs


def get_transcript_store(request: Request) -> ChatTranscriptStore:
    return get_runtime(request).transcripts


def get_app_settings() -> Settings:
    return get_settings()
