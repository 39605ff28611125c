class CharisError(Exception):
    """Base exception for the Charis agent backend."""

    pass


class LLMGatewayError(CharisError):
    """Raised when the chat-completion gateway answers with a non-2xx status."""

    retryable = False

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message or f"LLM gateway error: {status_code}"
        super().__init__(self.message)


class RateLimitedError(LLMGatewayError):
    """HTTP 429: the caller may back off and try again later."""

    retryable = True

    def __init__(self, message: str = "Rate limited. Please wait and try again."):
        super().__init__(429, message)


class QuotaExhaustedError(LLMGatewayError):
    """HTTP 402: gateway credits are exhausted; retrying will not help."""

    def __init__(self, message: str = "Credits exhausted. Please add funds."):
        super().__init__(402, message)


class ToolArgumentError(CharisError):
    """Raised when a tool call's arguments fail validation."""

    def __init__(self, tool_name: str, detail: str):
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Invalid arguments for '{tool_name}': {detail}")


class CollaboratorError(CharisError):
    """Raised when a remote tool collaborator reports a failure."""

    pass


class RunCancelledError(CharisError):
    """Raised inside the agent loop when its cancel token has been set."""

    pass
