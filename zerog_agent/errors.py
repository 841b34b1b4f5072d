"""Structured error types for the agent system."""


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class ShellBlockedError(AgentError):
    """Raised when a shell command is blocked by safety guards."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Blocked: {reason}")


class ShellTimeoutError(AgentError):
    """Raised when a shell command exceeds its timeout."""

    def __init__(self, timeout: int):
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout}s")


class OutputLimitError(AgentError):
    """Raised when a command writes more than the allowed output size."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Output exceeded {limit} bytes")


class PayloadParseError(AgentError):
    """Raised when a delimited payload is not the expected JSON shape."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"Invalid {kind} payload: {message}")


class AgentBusyError(AgentError):
    """Raised when an approval slot is requested while another is pending."""

    def __init__(self):
        super().__init__("An action is already waiting for approval.")
