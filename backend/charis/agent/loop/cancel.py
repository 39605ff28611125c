"""Cooperative cancellation for agent runs."""

import asyncio

from charis.core.exceptions import RunCancelledError


class CancelToken:
    """Set once; the loop checks it before each LLM call and each tool call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.reason or "Cancelled")
