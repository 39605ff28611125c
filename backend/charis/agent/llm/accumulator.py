"""Assembles streamed tool-call fragments into complete tool calls."""

import json
from dataclasses import dataclass, field

from charis.agent.llm.gateway import ToolCallDelta


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict
    raw_arguments: str = ""

    def to_openai(self) -> dict:
        """Shape used in the assistant message's ``tool_calls`` list."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments or json.dumps(self.arguments)},
        }


@dataclass
class DroppedToolCall:
    index: int
    name: str
    reason: str
    raw_arguments: str = ""


@dataclass
class _Slot:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class ToolCallAccumulator:
    """Sparse ``index -> slot`` map fed by ToolCallDelta events.

    Fragments for the same index are concatenated in arrival order. The id is
    taken from the first fragment that carries one; a slot that never gets an
    id is assigned ``call_{turn_ts}_{index}`` on finalize.
    """

    turn_ts: int = 0
    _slots: dict[int, _Slot] = field(default_factory=dict)

    def add(self, delta: ToolCallDelta) -> None:
        slot = self._slots.setdefault(delta.index, _Slot())
        if delta.id and not slot.id:
            slot.id = delta.id
        if delta.name:
            slot.name += delta.name
        if delta.arguments:
            slot.arguments += delta.arguments

    def __len__(self) -> int:
        return len(self._slots)

    def finalize(self) -> tuple[list[ToolCall], list[DroppedToolCall]]:
        """Return (calls, dropped) in index order.

        A slot becomes a ToolCall only if it has a name and its arguments parse
        as a JSON object. Empty arguments count as ``{}``.
        """
        calls: list[ToolCall] = []
        dropped: list[DroppedToolCall] = []

        for index in sorted(self._slots):
            slot = self._slots[index]
            if not slot.name:
                dropped.append(DroppedToolCall(index, "", "missing function name", slot.arguments))
                continue

            raw = slot.arguments.strip()
            try:
                args = json.loads(raw) if raw else {}
            except json.JSONDecodeError as exc:
                dropped.append(DroppedToolCall(index, slot.name, f"malformed JSON arguments: {exc.msg}", slot.arguments))
                continue
            if not isinstance(args, dict):
                dropped.append(DroppedToolCall(index, slot.name, "arguments are not a JSON object", slot.arguments))
                continue

            calls.append(
                ToolCall(
                    id=slot.id or f"call_{self.turn_ts}_{index}",
                    name=slot.name,
                    arguments=args,
                    raw_arguments=raw or "{}",
                )
            )
        return calls, dropped
