"""Unit tests for ToolCallAccumulator.

Tests cover:
1. Fragments for one index concatenate into a complete call
2. Interleaved indices are kept apart and finalized in index order
3. First id wins; missing ids are synthesized from turn_ts and index
4. Empty arguments become {}
5. Malformed JSON, non-object JSON and nameless slots are dropped with a reason
6. to_openai() reproduces the assistant tool_calls shape
"""

import json

import pytest

from charis.agent.llm.accumulator import ToolCallAccumulator
from charis.agent.llm.gateway import ToolCallDelta

pytestmark = pytest.mark.unit


def test_fragments_concatenate():
    acc = ToolCallAccumulator(turn_ts=1)
    acc.add(ToolCallDelta(index=0, id="call_a", name="search_web", arguments='{"que'))
    acc.add(ToolCallDelta(index=0, arguments='ry": "acme ads"'))
    acc.add(ToolCallDelta(index=0, arguments="}"))

    calls, dropped = acc.finalize()

    assert dropped == []
    assert len(calls) == 1
    assert calls[0].id == "call_a"
    assert calls[0].name == "search_web"
    assert calls[0].arguments == {"query": "acme ads"}


def test_interleaved_indices_finalize_in_order():
    acc = ToolCallAccumulator(turn_ts=1)
    acc.add(ToolCallDelta(index=1, id="call_b", name="finish", arguments='{"summary":'))
    acc.add(ToolCallDelta(index=0, id="call_a", name="think_and_plan", arguments="{"))
    acc.add(ToolCallDelta(index=1, arguments=' "done"}'))
    acc.add(ToolCallDelta(index=0, arguments='"task_understanding": "x", "reasoning": "y"}'))

    calls, dropped = acc.finalize()

    assert dropped == []
    assert [c.name for c in calls] == ["think_and_plan", "finish"]
    assert calls[1].arguments == {"summary": "done"}


def test_first_id_wins():
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="first", name="finish", arguments='{"summary": "s"}'))
    acc.add(ToolCallDelta(index=0, id="second"))

    calls, _ = acc.finalize()
    assert calls[0].id == "first"


def test_missing_id_is_synthesized():
    acc = ToolCallAccumulator(turn_ts=1700000000000)
    acc.add(ToolCallDelta(index=2, name="finish", arguments='{"summary": "s"}'))

    calls, _ = acc.finalize()
    assert calls[0].id == "call_1700000000000_2"


def test_empty_arguments_become_empty_object():
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="c", name="download_videos"))

    calls, dropped = acc.finalize()
    assert dropped == []
    assert calls[0].arguments == {}
    assert calls[0].raw_arguments == "{}"


def test_malformed_json_is_dropped():
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="bad", name="search_web", arguments='{"query": "acme"'))
    acc.add(ToolCallDelta(index=1, id="good", name="finish", arguments='{"summary": "ok"}'))

    calls, dropped = acc.finalize()

    assert [c.id for c in calls] == ["good"]
    assert len(dropped) == 1
    assert dropped[0].index == 0
    assert dropped[0].name == "search_web"
    assert dropped[0].reason.startswith("malformed JSON arguments")
    assert dropped[0].raw_arguments == '{"query": "acme"'


def test_non_object_json_is_dropped():
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="c", name="search_web", arguments='["acme"]'))

    calls, dropped = acc.finalize()
    assert calls == []
    assert dropped[0].reason == "arguments are not a JSON object"


def test_slot_without_name_is_dropped():
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="c", arguments="{}"))

    calls, dropped = acc.finalize()
    assert calls == []
    assert dropped[0].reason == "missing function name"


def test_len_counts_slots():
    acc = ToolCallAccumulator()
    assert len(acc) == 0
    acc.add(ToolCallDelta(index=0, name="a"))
    acc.add(ToolCallDelta(index=3, name="b"))
    assert len(acc) == 2


def test_to_openai_shape():
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="call_x", name="search_web", arguments='{"query": "acme"}'))
    calls, _ = acc.finalize()

    assert calls[0].to_openai() == {
        "id": "call_x",
        "type": "function",
        "function": {"name": "search_web", "arguments": '{"query": "acme"}'},
    }
    assert json.loads(calls[0].to_openai()["function"]["arguments"]) == {"query": "acme"}
