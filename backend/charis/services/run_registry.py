"""Process-local registry of in-flight agent runs.

Lets a separate request (``POST /api/agent/sessions/{id}/cancel``) reach a run
started by ``POST /api/agent/stream``. Runs deregister themselves when their
task finishes. Registry state is per-process; a run on another worker cannot
be cancelled from here.
"""

import asyncio
from dataclasses import dataclass

import structlog

from charis.agent.loop.cancel import CancelToken

logger = structlog.get_logger(__name__)


@dataclass
class ActiveRun:
    session_id: str
    task: asyncio.Task
    cancel: CancelToken


class RunRegistry:
    def __init__(self) -> None:
        self._runs: dict[str, ActiveRun] = {}

    def register(self, session_id: str, task: asyncio.Task, cancel: CancelToken) -> ActiveRun:
        run = ActiveRun(session_id=session_id, task=task, cancel=cancel)
        self._runs[session_id] = run

        def _done(_: asyncio.Task) -> None:
            if self._runs.get(session_id) is run:
                del self._runs[session_id]

        task.add_done_callback(_done)
        return run

    def get(self, session_id: str) -> ActiveRun | None:
        return self._runs.get(session_id)

    def is_running(self, session_id: str) -> bool:
        return session_id in self._runs

    def cancel(self, session_id: str, reason: str = "Cancelled by user") -> bool:
        """Signal the run's cancel token. Returns False when no such run is active."""
        run = self._runs.get(session_id)
        if run is None:
            return False
        run.cancel.cancel(reason)
        logger.info("agent_run_cancel_requested", session_id=session_id, reason=reason)
        return True

    def __len__(self) -> int:
        return len(self._runs)

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Cancel every run cooperatively, then hard-cancel stragglers after *grace_seconds*."""
        if not self._runs:
            return
        runs = list(self._runs.values())
        for run in runs:
            run.cancel.cancel("Server shutting down")
        _, pending = await asyncio.wait([r.task for r in runs], timeout=grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("agent_runs_shutdown", total=len(runs), forced=len(pending))
