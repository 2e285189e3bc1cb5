"""Exceptions raised by the agentdesk client and conversation layer."""

from typing import Optional


class AgentDeskError(Exception):
    """Base exception for agentdesk errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return str(self.message)


class EndpointError(AgentDeskError):
    """The agent endpoint answered with a non-2xx HTTP status."""

    def __init__(self, status: int, status_text: str, body: Optional[str] = None, operation: str = "request"):
        self.status = status
        self.status_text = status_text
        self.body = body
        super().__init__(f"Failed to {operation}: {status} {status_text}")


class DecodeError(AgentDeskError):
    """A body that should have been a complete JSON document was not."""

    def __init__(self, raw: str, message: Optional[str] = None):
        self.raw = raw
        super().__init__(message or "Response body is not a valid JSON document")


class FrameParseError(AgentDeskError):
    """One line of a streaming response could not be parsed.

    Reported and skipped; never raised out of a stream.
    """

    def __init__(self, line: str, reason: Optional[str] = None):
        self.line = line
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed to parse stream line{detail}")


class TransportError(AgentDeskError):
    """The request never produced an HTTP response (connect failure, timeout, dropped stream)."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class AgentNotFoundError(AgentDeskError):
    """No agent with the given id is registered."""

    def __init__(self, agent_id: str, message: Optional[str] = None):
        self.agent_id = agent_id
        super().__init__(message or f"Agent '{agent_id}' is not registered")


class AgentImportError(AgentDeskError):
    """An exported agent list could not be imported."""

    pass
