"""Redis client and the per-session execution-log change feed.

Each session gets one Redis Stream, ``session:{id}:logs``. ExecutionLogStore
publishes every inserted row to it and the ``/logs/stream`` SSE route reads it
back. Entries carry the row as JSON in a single ``entry`` field. The stream is
capped (approximate MAXLEN) and expires 24 hours after its last write.
"""

import json
from typing import Any

import redis.asyncio as redis

STREAM_TTL_SECONDS = 86400
STREAM_MAXLEN = 5000

_redis: redis.Redis | None = None


async def init_redis(url: str) -> redis.Redis:
    """Connect the shared client and fail fast if Redis does not answer."""
    global _redis

    if _redis is None:
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        await client.ping()
        _redis = client
    return _redis


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """FastAPI dependency for the shared client.

    Raises RuntimeError if init_redis() has not been called.
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def stream_key(session_id: str) -> str:
    return f"session:{session_id}:logs"


async def publish_log_entry(client: redis.Redis, session_id: str, row: dict[str, Any]) -> str:
    """Append one log row to the session's stream and refresh its TTL.

    XADD and EXPIRE go out in one pipeline round trip. Returns the entry id.
    """
    key = stream_key(session_id)
    async with client.pipeline(transaction=False) as pipe:
        pipe.xadd(key, {"entry": json.dumps(row, default=str)}, maxlen=STREAM_MAXLEN, approximate=True)
        pipe.expire(key, STREAM_TTL_SECONDS)
        entry_id, _ = await pipe.execute()
    return entry_id


async def read_log_entries(
    client: redis.Redis,
    session_id: str,
    last_id: str,
    count: int,
    block_ms: int | None = None,
) -> list[dict[str, Any]]:
    """Read rows published after *last_id*.

    Each returned row gains ``stream_id`` so the caller can resume from it.
    Entries whose payload is not valid JSON come back as ``{"stream_id": ...}``.
    """
    results = await client.xread({stream_key(session_id): last_id}, count=count, block=block_ms)
    rows = []
    for _key, entries in results or []:
        for entry_id, fields in entries:
            try:
                row = json.loads(fields.get("entry") or "{}")
            except json.JSONDecodeError:
                row = {}
            if not isinstance(row, dict):
                row = {}
            row["stream_id"] = entry_id
            rows.append(row)
    return rows
