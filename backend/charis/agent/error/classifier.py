"""Error classification for tool failure envelopes.

Every failed tool result carries an ``error_category`` so the model can decide
whether calling the same tool again is worthwhile:

- NEVER_RETRY: auth, quota, configuration problems. Same call will fail again.
- TRANSIENT: network or upstream availability problems. A retry may succeed.
- INVALID_INPUT: the arguments were wrong. Retry only with different arguments.

Default for unknown errors is TRANSIENT.
"""

from enum import StrEnum

from charis.core.exceptions import QuotaExhaustedError, RateLimitedError, ToolArgumentError


class ErrorCategory(StrEnum):
    NEVER_RETRY = "never_retry"
    TRANSIENT = "transient"
    INVALID_INPUT = "invalid_input"


# Matched case-insensitively against combined "{error_type} {error_message}".
_NEVER_RETRY_PATTERNS: tuple[str, ...] = (
    "permission denied",
    "authentication failed",
    "unauthorized",
    "forbidden",
    "invalid credentials",
    "access denied",
    "not configured",
    "credits exhausted",
    "payment required",
    "unknown tool",
)

_INVALID_INPUT_PATTERNS: tuple[str, ...] = (
    "invalid arguments",
    "validation error",
    "no images provided",
    "no video urls",
    "malformed",
)

_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "connection refused",
    "timeout",
    "timed out",
    "temporarily unavailable",
    "temporary failure",
    "service unavailable",
    "rate limit",
    "bad gateway",
)


def classify_error(error_type: str, error_message: str) -> ErrorCategory:
    """Classify an error by its type name and message.

    NEVER_RETRY takes priority over INVALID_INPUT, which takes priority over
    TRANSIENT.
    """
    combined = f"{error_type} {error_message}".lower()

    for pattern in _NEVER_RETRY_PATTERNS:
        if pattern in combined:
            return ErrorCategory.NEVER_RETRY

    for pattern in _INVALID_INPUT_PATTERNS:
        if pattern in combined:
            return ErrorCategory.INVALID_INPUT

    for pattern in _TRANSIENT_PATTERNS:
        if pattern in combined:
            return ErrorCategory.TRANSIENT

    return ErrorCategory.TRANSIENT


def classify_exception(exc: BaseException) -> ErrorCategory:
    """Classify a raised exception; typed errors short-circuit the pattern scan."""
    if isinstance(exc, ToolArgumentError):
        return ErrorCategory.INVALID_INPUT
    if isinstance(exc, QuotaExhaustedError):
        return ErrorCategory.NEVER_RETRY
    if isinstance(exc, RateLimitedError):
        return ErrorCategory.TRANSIENT
    return classify_error(type(exc).__name__, str(exc))
