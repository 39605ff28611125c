"""Agent progress events and their SSE framing.

Wire shape (one SSE frame per event)::

    data: {"mode":"updates","type":"step_start","node":"agent","data":{...},"timestamp":"..."}\n\n

The stream always terminates with ``DONE_FRAME``.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

DONE_FRAME = "data: [DONE]\n\n"


class EventMode(StrEnum):
    UPDATES = "updates"
    MESSAGES = "messages"
    CUSTOM = "custom"


class EventType(StrEnum):
    SESSION_START = "session_start"
    STEP_START = "step_start"
    STEP_END = "step_end"
    STEP_ERROR = "step_error"
    TOKEN = "token"
    PLAN_CREATED = "plan_created"
    TOOL_PROGRESS = "tool_progress"
    TOOL_RESULT = "tool_result"
    SESSION_END = "session_end"
    ERROR = "error"


_CUSTOM_TYPES = frozenset({EventType.PLAN_CREATED, EventType.TOOL_PROGRESS, EventType.TOOL_RESULT})


def mode_for(event_type: EventType) -> EventMode:
    if event_type == EventType.TOKEN:
        return EventMode.MESSAGES
    if event_type in _CUSTOM_TYPES:
        return EventMode.CUSTOM
    return EventMode.UPDATES


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AgentEvent(BaseModel):
    mode: EventMode
    type: EventType
    node: str = "agent"
    step: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_now_iso)

    @classmethod
    def build(
        cls,
        event_type: EventType,
        data: dict[str, Any] | None = None,
        node: str = "agent",
        step: str | None = None,
    ) -> "AgentEvent":
        return cls(mode=mode_for(event_type), type=event_type, node=node, step=step, data=data or {})

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
