"""Agent protocol (JSON-RPC over HTTP) client, stream reconstruction and conversations.

Example:
    ```python
    from agentdesk.a2a import AgentEndpoint, ConversationCoordinator

    coordinator = ConversationCoordinator([AgentEndpoint(id="1", url="http://localhost:10000", streaming=True)])
    record = await coordinator.send_message("1", "Hello!")
    print(record.content, record.state)
    ```
"""

from agentdesk.a2a.client import AgentProtocolClient
from agentdesk.a2a.conversation import ConversationCoordinator, decide_continuation
from agentdesk.a2a.directory import AgentDirectory, discover_agent
from agentdesk.a2a.normalize import ExtractionRule, ResponseNormalizer, normalize_response
from agentdesk.a2a.request import RequestBuilder
from agentdesk.a2a.schemas import (
    NO_CONTENT,
    AgentEndpoint,
    Artifact,
    ArtifactPart,
    CapabilityCard,
    ChatRecord,
    Envelope,
    FileAttachment,
    NormalizedResponse,
    Sender,
    Session,
    TaskExchange,
    TaskState,
)
from agentdesk.a2a.stream import StreamFrameReconstructor, iter_frames

__all__ = [
    # Client
    "AgentProtocolClient",
    "RequestBuilder",
    "StreamFrameReconstructor",
    "iter_frames",
    "ResponseNormalizer",
    "ExtractionRule",
    "normalize_response",
    # Conversations
    "ConversationCoordinator",
    "decide_continuation",
    "AgentDirectory",
    "discover_agent",
    # Schemas
    "NO_CONTENT",
    "AgentEndpoint",
    "Artifact",
    "ArtifactPart",
    "CapabilityCard",
    "ChatRecord",
    "Envelope",
    "FileAttachment",
    "NormalizedResponse",
    "Sender",
    "Session",
    "TaskExchange",
    "TaskState",
]
