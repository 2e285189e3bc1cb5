from agentdesk.exceptions import (
    AgentDeskError,
    AgentImportError,
    AgentNotFoundError,
    DecodeError,
    EndpointError,
    FrameParseError,
    TransportError,
)

__all__ = [
    "AgentDeskError",
    "AgentImportError",
    "AgentNotFoundError",
    "DecodeError",
    "EndpointError",
    "FrameParseError",
    "TransportError",
]
