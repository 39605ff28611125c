"""ExecutionLogStore: append-only audit trail of agent steps.

Every row is inserted into ``agent_execution_logs`` and then appended to the
Redis Stream ``session:{session_id}:logs`` so UIs can follow a run live
(``GET /api/agent/sessions/{id}/logs/stream``) without polling the table.

Design decisions:
  - Non-fatal writes: a failed insert or stream append is logged with structlog
    and swallowed. The agent loop must not crash because the audit trail did.
  - Insert-only: a step is a ``started`` row plus exactly one terminal row that
    shares ``input_data.step_id``. ``StepHandle`` enforces the "exactly one".
  - duration_ms is per step (monotonic clock), not time since run start.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from charis.db.models.execution_log import ExecutionLog, LogStatus
from charis.db.redis import publish_log_entry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger(__name__)


class StepHandle:
    """A started step awaiting its single terminal row."""

    def __init__(
        self,
        store: ExecutionLogStore,
        session_id: str,
        step_name: str,
        tool_name: str | None,
        input_data: dict[str, Any],
    ) -> None:
        self._store = store
        self.session_id = session_id
        self.step_name = step_name
        self.tool_name = tool_name
        self.input_data = input_data
        self.step_id: str = input_data["step_id"]
        self._started = time.monotonic()
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    async def complete(self, output: dict[str, Any] | None = None, progress: int | None = None) -> None:
        await self._finish(LogStatus.COMPLETED, output=output, error=None, progress=progress)

    async def fail(self, error: str, output: dict[str, Any] | None = None, progress: int | None = None) -> None:
        await self._finish(LogStatus.FAILED, output=output, error=error, progress=progress)

    async def _finish(self, status: str, output: dict[str, Any] | None, error: str | None, progress: int | None) -> None:
        if self._finished:
            logger.warning(
                "step_already_finished",
                session_id=self.session_id,
                step_id=self.step_id,
                step_name=self.step_name,
                status=status,
            )
            return
        self._finished = True

        input_data = dict(self.input_data)
        if progress is not None:
            input_data["progress_percent"] = progress
        await self._store.insert(
            self.session_id,
            self.step_name,
            status,
            tool_name=self.tool_name,
            input_data=input_data,
            output_data=output,
            error_message=error,
            duration_ms=self.elapsed_ms(),
        )


class ExecutionLogStore:
    """Injectable store for execution log rows. All writes are non-fatal."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], redis=None) -> None:
        self._session_factory = session_factory
        self._redis = redis

    async def insert(
        self,
        session_id: str,
        step_name: str,
        status: str,
        tool_name: str | None = None,
        input_data: dict[str, Any] | None = None,
        output_data: dict[str, Any] | None = None,
        error_message: str | None = None,
        duration_ms: int | None = None,
    ) -> dict[str, Any] | None:
        """Insert one row and append it to the change feed. Returns the row dict or None."""
        bound = logger.bind(session_id=session_id, step_name=step_name, status=status)
        try:
            async with self._session_factory() as db:
                entry = ExecutionLog(
                    session_id=session_id,
                    step_name=step_name,
                    status=status,
                    tool_name=tool_name,
                    input_data=input_data,
                    output_data=_json_safe(output_data),
                    error_message=error_message,
                    duration_ms=duration_ms,
                )
                db.add(entry)
                await db.commit()
                row = entry.to_dict()
        except Exception as exc:
            bound.warning(
                "execution_log_insert_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        await self._append_to_stream(session_id, row)
        return row

    async def begin_step(
        self,
        session_id: str,
        step_name: str,
        tool_name: str | None = None,
        input_data: dict[str, Any] | None = None,
        tool_icon: str | None = None,
        progress: int | None = None,
        sub_step: str | None = None,
    ) -> StepHandle:
        """Write the ``started`` row and return the handle for its terminal row."""
        data: dict[str, Any] = dict(input_data or {})
        data["step_id"] = uuid.uuid4().hex
        if tool_icon is not None:
            data["tool_icon"] = tool_icon
        if progress is not None:
            data["progress_percent"] = progress
        if sub_step is not None:
            data["sub_step"] = sub_step

        handle = StepHandle(self, session_id, step_name, tool_name, data)
        await self.insert(session_id, step_name, LogStatus.STARTED, tool_name=tool_name, input_data=data)
        return handle

    async def skip(
        self,
        session_id: str,
        step_name: str,
        reason: str,
        tool_name: str | None = None,
        input_data: dict[str, Any] | None = None,
        tool_icon: str | None = None,
    ) -> None:
        """Record a call that was never executed (no ``started`` row precedes it)."""
        data: dict[str, Any] = dict(input_data or {})
        data["step_id"] = uuid.uuid4().hex
        if tool_icon is not None:
            data["tool_icon"] = tool_icon
        await self.insert(
            session_id,
            step_name,
            LogStatus.SKIPPED,
            tool_name=tool_name,
            input_data=data,
            error_message=reason,
            duration_ms=0,
        )

    async def list_for_session(self, session_id: str) -> list[dict[str, Any]]:
        """Return all rows for a session in insertion order."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ExecutionLog)
                .where(ExecutionLog.session_id == session_id)
                .order_by(ExecutionLog.created_at.asc())
            )
            return [row.to_dict() for row in result.scalars().all()]

    async def _append_to_stream(self, session_id: str, row: dict[str, Any]) -> None:
        if self._redis is None:
            return
        try:
            await publish_log_entry(self._redis, session_id, row)
        except Exception as exc:
            logger.warning(
                "execution_log_stream_failed",
                session_id=session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )


def _json_safe(value: dict[str, Any] | None) -> dict[str, Any] | None:
    """Round-trip through JSON so non-serializable leaves become strings."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))
