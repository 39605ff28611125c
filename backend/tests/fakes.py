"""Test doubles shared across the suite: scripted LLM gateway, fake collaborators, runtime builder."""

from __future__ import annotations

import copy
import json
from collections.abc import AsyncIterator

from charis.agent.events import DONE_FRAME
from charis.agent.llm.gateway import StreamEvent, TokenDelta, ToolCallDelta
from charis.agent.orchestrator import AgentOrchestrator
from charis.agent.runtime import AgentRuntime
from charis.agent.stream import EventStream
from charis.agent.tools.dispatcher import ToolExecutor
from charis.core.config import Settings
from charis.db.base import build_engine, build_session_factory, create_tables
from charis.services.execution_log import ExecutionLogStore
from charis.services.run_registry import RunRegistry
from charis.services.session_store import AgentSessionStore
from charis.services.transcript import ChatTranscriptStore

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


async def create_sqlite_factory():
    """In-memory SQLite engine on one shared connection, with all tables created."""
    engine = build_engine(SQLITE_URL)
    await create_tables(engine)
    return engine, build_session_factory(engine)


class BrokenSession:
    """Async-session stand-in that fails on entry."""

    async def __aenter__(self):
        raise ConnectionError("database unavailable")

    async def __aexit__(self, *args):
        return False


def broken_session_factory():
    return BrokenSession()


# ---------------------------------------------------------------------------
# Scripted LLM gateway
# ---------------------------------------------------------------------------


def text_turn(text: str, chunk_size: int = 40) -> list[StreamEvent]:
    """A turn that only streams text, split into chunks."""
    return [TokenDelta(token=text[i : i + chunk_size]) for i in range(0, len(text), chunk_size)]


def tool_turn(*calls: tuple, text: str = "") -> list[StreamEvent]:
    """A turn with tool calls.

    Each call is ``(name, arguments)`` or ``(name, arguments, call_id)``;
    ``arguments`` may be a dict (JSON-encoded) or a raw string (sent as-is, so
    malformed JSON can be scripted). Arguments are split into two fragments.
    """
    events: list[StreamEvent] = list(text_turn(text)) if text else []
    for index, call in enumerate(calls):
        name, arguments = call[0], call[1]
        call_id = call[2] if len(call) > 2 else f"call_{index}"
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        half = len(raw) // 2
        events.append(ToolCallDelta(index=index, id=call_id, name=name, arguments=raw[:half]))
        events.append(ToolCallDelta(index=index, arguments=raw[half:]))
    return events


class ScriptedGateway:
    """Plays back one scripted turn per stream_chat call.

    A turn is a list of stream events, or an exception instance to raise.
    Each call's message list is deep-copied into ``calls``.
    """

    def __init__(self, turns: list, model: str = "test/model", vision_answer: str = "{}") -> None:
        self._turns = list(turns)
        self.model = model
        self.calls: list[list[dict]] = []
        self.tools_seen: list[list[dict] | None] = []
        self.vision_answer = vision_answer
        self.complete_calls: list[dict] = []

    async def stream_chat(self, messages, tools=None, tool_choice="auto") -> AsyncIterator[StreamEvent]:
        self.calls.append(copy.deepcopy(messages))
        self.tools_seen.append(tools)
        if not self._turns:
            raise AssertionError("ScriptedGateway ran out of turns")
        turn = self._turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        for event in turn:
            yield event

    async def complete(self, messages, max_tokens=None, model=None) -> str:
        self.complete_calls.append({"messages": messages, "max_tokens": max_tokens, "model": model})
        return self.vision_answer


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeScraper:
    def __init__(self, ads: list[dict] | None = None, screenshot_url: str | None = None, error: Exception | None = None):
        self.ads = ads if ads is not None else []
        self.screenshot_url = screenshot_url
        self.error = error
        self.calls: list[dict] = []

    async def scrape(self, brand_name, max_ads, session_id, user_id):
        self.calls.append({"brand_name": brand_name, "max_ads": max_ads, "session_id": session_id, "user_id": user_id})
        if self.error is not None:
            raise self.error
        return {"ads": self.ads, "screenshotUrl": self.screenshot_url}


class FakeDownloader:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[dict] = []

    async def download(self, video_urls, session_id):
        self.calls.append({"video_urls": list(video_urls), "session_id": session_id})
        if self.error is not None:
            raise self.error
        return {
            "results": [
                {"success": True, "storagePath": f"{session_id}/video_{i}.mp4"} for i, _ in enumerate(video_urls)
            ]
        }


class FakeVision:
    def __init__(self, analysis: dict | None = None, error: Exception | None = None):
        self.analysis = analysis if analysis is not None else {"visualScore": 7}
        self.error = error
        self.calls: list[dict] = []

    async def analyze(self, image_urls, ad_copy, brand_context):
        self.calls.append({"image_urls": list(image_urls), "ad_copy": ad_copy, "brand_context": brand_context})
        if self.error is not None:
            raise self.error
        return self.analysis


class FakeSearcher:
    def __init__(self, hits: list[dict] | None = None, error: Exception | None = None):
        self.hits = hits if hits is not None else []
        self.error = error
        self.calls: list[dict] = []

    async def search(self, query, limit):
        self.calls.append({"query": query, "limit": limit})
        if self.error is not None:
            raise self.error
        return self.hits


class FakeReportStore:
    def __init__(self):
        self.saved: list[dict] = []

    async def save(self, session_id, user_id, brand_name, report_data):
        self.saved.append(
            {"session_id": session_id, "user_id": user_id, "brand_name": brand_name, "report_data": report_data}
        )
        return f"report-{len(self.saved)}"


def make_collaborators() -> dict:
    return {
        "scraper": FakeScraper(
            ads=[
                {
                    "advertiser": "Acme",
                    "adCopy": "Buy now",
                    "videoUrl": "https://cdn.test/v1.mp4",
                    "thumbnailUrl": "https://cdn.test/t1.jpg",
                },
                {"advertiser": "Acme", "adCopy": "Limited offer", "thumbnailUrl": "https://cdn.test/t2.jpg"},
            ],
            screenshot_url="https://cdn.test/shot.png",
        ),
        "downloader": FakeDownloader(),
        "vision": FakeVision(),
        "searcher": FakeSearcher(
            hits=[{"title": "Acme news", "url": "https://news.test/acme", "description": "About Acme"}]
        ),
        "reports": FakeReportStore(),
    }


# ---------------------------------------------------------------------------
# Runtime wiring
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    values = {
        "agent_max_iterations": 15,
        "implicit_completion_chars": 300,
        "transcript_flush_chars": 100,
        "event_queue_size": 10000,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def build_runtime(
    session_factory,
    gateway,
    collaborators: dict,
    settings: Settings | None = None,
    redis=None,
) -> AgentRuntime:
    settings = settings or make_settings()
    sessions = AgentSessionStore(session_factory)
    logs = ExecutionLogStore(session_factory, redis=redis)
    transcripts = ChatTranscriptStore(session_factory, flush_chars=settings.transcript_flush_chars)
    executor = ToolExecutor(
        logs,
        max_download_videos=settings.max_download_videos,
        max_vision_images=settings.max_vision_images,
        **collaborators,
    )
    orchestrator = AgentOrchestrator(gateway, executor, sessions, logs, transcripts, settings)
    return AgentRuntime(
        orchestrator=orchestrator,
        registry=RunRegistry(),
        sessions=sessions,
        logs=logs,
        transcripts=transcripts,
    )


def decode_frames(frames: list[str]) -> list[dict]:
    return [json.loads(f[len("data: ") :].strip()) for f in frames if f != DONE_FRAME]


async def drain_events(stream: EventStream) -> tuple[list[dict], list[str]]:
    """Read every frame from a closed stream. Returns (decoded events, raw frames)."""
    frames = [frame async for frame in stream.frames()]
    return decode_frames(frames), frames


def parse_sse(body: str) -> list[str]:
    """Split an SSE response body into frames."""
    return [frame for frame in body.split("\n\n") if frame]
