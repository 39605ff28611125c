"""Safety guards for the ReAct agent loop.

Provides three independent safety behaviours:
1. Iteration cap: hard limit on reasoning turns per run
2. Repetition detection: raises on the 3rd identical (tool_name, arguments) within a 10-call sliding window
3. Tool result truncation: middle-truncates observations over the word limit, keeping head and tail
"""

import collections
import json


class IterationCapError(Exception):
    """Raised when a run asks for more reasoning turns than allowed."""


class RepetitionError(Exception):
    """Raised when the same tool+arguments fingerprint appears 3+ times in the last 10 calls."""

    def __init__(self, tool_name: str, count: int) -> None:
        self.tool_name = tool_name
        self.count = count
        super().__init__(
            f"Repetition detected: '{tool_name}' called {count} times with the same arguments "
            "in the last 10 calls. Change your approach instead of repeating this call."
        )


class IterationGuard:
    """Per-run guard state.

    Usage::

        guard = IterationGuard(max_iterations=15)

        while not done and not guard.exhausted:
            iteration = guard.start_iteration()
            ...
            guard.check_repetition(name, args)      # before each tool dispatch
            text = guard.truncate_tool_result(raw)  # before each observation
    """

    def __init__(
        self,
        max_iterations: int = 15,
        window: int = 10,
        max_repeats: int = 3,
        result_word_limit: int = 1500,
    ) -> None:
        self.max_iterations = max_iterations
        self._iteration = 0
        self._max_repeats = max_repeats
        self._result_word_limit = result_word_limit
        # Sliding window of fingerprints (oldest auto-evicted)
        self._window: collections.deque[str] = collections.deque(maxlen=window)

    # ------------------------------------------------------------------
    # Iteration cap
    # ------------------------------------------------------------------

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def exhausted(self) -> bool:
        return self._iteration >= self.max_iterations

    def start_iteration(self) -> int:
        """Advance to the next iteration and return its 1-based number.

        Raises:
            IterationCapError: when called after max_iterations turns.
        """
        if self.exhausted:
            raise IterationCapError(f"Iteration limit reached after {self.max_iterations} turns.")
        self._iteration += 1
        return self._iteration

    # ------------------------------------------------------------------
    # Repetition detection
    # ------------------------------------------------------------------

    def check_repetition(self, tool_name: str, arguments: dict) -> None:  # type: ignore[type-arg]
        """Record a call and raise if it is the Nth identical call in the window.

        A fingerprint is ``tool_name:json(arguments, sort_keys=True)``.

        Raises:
            RepetitionError: when the fingerprint appears ``max_repeats`` or
                more times in the current window.
        """
        fingerprint = f"{tool_name}:{json.dumps(arguments, sort_keys=True, default=str)}"
        self._window.append(fingerprint)
        count = sum(1 for fp in self._window if fp == fingerprint)
        if count >= self._max_repeats:
            raise RepetitionError(tool_name, count)

    # ------------------------------------------------------------------
    # Tool result truncation
    # ------------------------------------------------------------------

    def truncate_tool_result(self, text: str, word_limit: int | None = None) -> str:
        """Middle-truncate *text* if it exceeds the word limit.

        Word count stands in for token count. The truncated form is::

            <first half>
            [N words omitted]
            <last half>
        """
        limit = word_limit or self._result_word_limit
        words = text.split()
        if len(words) <= limit:
            return text
        half = limit // 2
        omitted = len(words) - 2 * half
        head = " ".join(words[:half])
        tail = " ".join(words[-half:])
        return f"{head}\n[{omitted} words omitted]\n{tail}"
