"""When a turn without tool calls ends the run."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CompletionPolicy:
    """Implicit completion for turns where the model answered in plain text.

    The explicit path (a successful ``finish`` call) lives in the orchestrator;
    this only covers turns with no tool calls at all.
    """

    enabled: bool = True
    min_chars: int = 300
    max_iterations: int = 15

    def is_implicitly_complete(self, turn_text: str, iteration: int) -> bool:
        if not self.enabled:
            return iteration >= self.max_iterations
        return len(turn_text) > self.min_chars or iteration >= self.max_iterations - 1
