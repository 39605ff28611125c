"""AgentSessionStore: lifecycle row for each agent run.

Writes are non-fatal (logged, swallowed); reads propagate so routes can tell
"missing" from "broken".
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select, update

from charis.db.models.agent_session import AgentSession, SessionState

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger(__name__)

MAX_RUNNING_PROGRESS = 95


def iteration_progress(iteration: int) -> int:
    """Progress shown while iteration *iteration* (1-based) runs. Only finalization reaches 100."""
    return min(5 + 6 * iteration, MAX_RUNNING_PROGRESS)


class AgentSessionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def start(
        self,
        session_id: str,
        user_id: str,
        title: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Upsert the session as ``running`` with progress 0.

        Query-then-update keeps this dialect-neutral (no ON CONFLICT).
        """
        bound = logger.bind(session_id=session_id)
        try:
            async with self._session_factory() as db:
                existing = await db.get(AgentSession, session_id)
                if existing is not None:
                    existing.user_id = user_id
                    existing.state = SessionState.RUNNING
                    existing.progress = 0
                    existing.current_step = "initializing"
                    existing.title = title
                    existing.metadata_ = dict(metadata or {})
                    existing.completed_at = None
                    bound.debug("agent_session_restarted")
                else:
                    db.add(
                        AgentSession(
                            id=session_id,
                            user_id=user_id,
                            state=SessionState.RUNNING,
                            progress=0,
                            current_step="initializing",
                            title=title,
                            metadata_=dict(metadata or {}),
                        )
                    )
                    bound.debug("agent_session_created")
                await db.commit()
        except Exception as exc:
            bound.warning("agent_session_start_failed", error=str(exc), error_type=type(exc).__name__)

    async def advance(self, session_id: str, progress: int, current_step: str) -> None:
        """Move progress forward (never backward) and record the current step."""
        bound = logger.bind(session_id=session_id, progress=progress, current_step=current_step)
        try:
            async with self._session_factory() as db:
                row = await db.get(AgentSession, session_id)
                if row is None:
                    bound.warning("agent_session_missing")
                    return
                row.progress = max(row.progress or 0, min(progress, MAX_RUNNING_PROGRESS))
                row.current_step = current_step
                await db.commit()
        except Exception as exc:
            bound.warning("agent_session_advance_failed", error=str(exc), error_type=type(exc).__name__)

    async def merge_metadata(self, session_id: str, patch: dict[str, Any]) -> None:
        bound = logger.bind(session_id=session_id)
        try:
            async with self._session_factory() as db:
                row = await db.get(AgentSession, session_id)
                if row is None:
                    bound.warning("agent_session_missing")
                    return
                # Reassign so the JSON column is flagged dirty
                row.metadata_ = {**(row.metadata_ or {}), **patch}
                await db.commit()
        except Exception as exc:
            bound.warning("agent_session_metadata_failed", error=str(exc), error_type=type(exc).__name__)

    async def finalize(self, session_id: str, state: str, metadata: dict[str, Any] | None = None) -> None:
        """Write the terminal state and ``completed_at`` exactly once.

        ``completed`` also sets progress to 100. A second finalize for the same
        run is ignored with a warning.
        """
        bound = logger.bind(session_id=session_id, state=state)
        try:
            async with self._session_factory() as db:
                row = await db.get(AgentSession, session_id)
                if row is None:
                    bound.warning("agent_session_missing")
                    return
                if row.completed_at is not None and row.state in SessionState.TERMINAL:
                    bound.warning("agent_session_already_finalized", existing_state=row.state)
                    return
                row.state = state
                row.current_step = state
                row.completed_at = datetime.now(UTC)
                if state == SessionState.COMPLETED:
                    row.progress = 100
                if metadata:
                    row.metadata_ = {**(row.metadata_ or {}), **metadata}
                await db.commit()
                bound.info("agent_session_finalized")
        except Exception as exc:
            bound.warning("agent_session_finalize_failed", error=str(exc), error_type=type(exc).__name__)

    async def get(self, session_id: str) -> dict[str, Any] | None:
        async with self._session_factory() as db:
            row = await db.get(AgentSession, session_id)
            return row.to_dict() if row is not None else None

    async def fail_stale(self, cutoff: datetime, reason: str = "stale_session") -> int:
        """Mark ``running`` sessions last updated before *cutoff* as failed. Returns the row count."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(AgentSession)
                .where(AgentSession.state == SessionState.RUNNING)
                .where(AgentSession.updated_at < cutoff)
                .values(
                    state=SessionState.FAILED,
                    current_step=SessionState.FAILED,
                    completed_at=datetime.now(UTC),
                )
            )
            await db.commit()
            count = result.rowcount or 0
        if count:
            logger.info("stale_sessions_failed", count=count, reason=reason, cutoff=cutoff.isoformat())
        return count

    async def list_running(self) -> list[dict[str, Any]]:
        async with self._session_factory() as db:
            result = await db.execute(select(AgentSession).where(AgentSession.state == SessionState.RUNNING))
            return [row.to_dict() for row in result.scalars().all()]
