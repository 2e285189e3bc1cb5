from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from agentdesk.exceptions import AgentImportError

NO_CONTENT = "No response content found"


class TaskState(str, Enum):
    """Task states reported by agents in ``result.status.state``."""

    UNKNOWN = "unknown"
    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"
    ERROR = "error"

    @classmethod
    def parse(cls, value: Any) -> Optional["TaskState"]:
        """Map a raw state value to a member. Unrecognized strings become UNKNOWN."""
        if value is None:
            return None
        if isinstance(value, TaskState):
            return value
        if not isinstance(value, str) or not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"


@dataclass
class FileAttachment:
    """A file handed over by the application, already base64 encoded."""

    name: str
    base64_content: str
    mime_type: Optional[str] = None


@dataclass
class MessagePart:
    kind: str
    payload: Any

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "text":
            return {"kind": "text", "text": self.payload}
        if self.kind == "file":
            attachment: FileAttachment = self.payload
            file_data: Dict[str, Any] = {"name": attachment.name}
            if attachment.mime_type:
                file_data["mimeType"] = attachment.mime_type
            file_data["bytes"] = attachment.base64_content
            return {"kind": "file", "file": file_data}
        raise ValueError(f"Unsupported message part kind: {self.kind}")


@dataclass
class OutboundMessage:
    parts: List[MessagePart]
    role: str = "user"

    def __post_init__(self):
        if not self.parts:
            raise ValueError("An outbound message needs at least one part")

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "parts": [part.to_dict() for part in self.parts]}


@dataclass
class Envelope:
    """JSON-RPC request wrapper. ``id`` identifies the call, never the task."""

    id: str
    method: str
    params: Dict[str, Any]
    version: str = "2.0"

    def to_dict(self) -> Dict[str, Any]:
        return {"jsonrpc": self.version, "id": self.id, "method": self.method, "params": self.params}


@dataclass
class ArtifactPart:
    kind: Optional[str] = None
    text: Optional[str] = None
    file_ref: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactPart":
        file_ref = data.get("file")
        return cls(
            kind=data.get("kind", data.get("type")),
            text=data.get("text") if isinstance(data.get("text"), str) else None,
            file_ref=file_ref if isinstance(file_ref, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        _dict: Dict[str, Any] = {"kind": self.kind}
        if self.text is not None:
            _dict["text"] = self.text
        if self.file_ref is not None:
            _dict["file"] = self.file_ref
        return _dict


@dataclass
class Artifact:
    """A named structured output attached to a task result."""

    name: Optional[str] = None
    description: Optional[str] = None
    parts: List[ArtifactPart] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        raw_parts = data.get("parts")
        parts = [ArtifactPart.from_dict(p) for p in raw_parts if isinstance(p, dict)] if isinstance(raw_parts, list) else []
        return cls(name=data.get("name"), description=data.get("description"), parts=parts)

    def to_dict(self) -> Dict[str, Any]:
        _dict: Dict[str, Any] = {"parts": [part.to_dict() for part in self.parts]}
        if self.name is not None:
            _dict["name"] = self.name
        if self.description is not None:
            _dict["description"] = self.description
        return _dict


@dataclass
class NormalizedResponse:
    content: str = NO_CONTENT
    state: Optional[TaskState] = None
    artifacts: Optional[List[Artifact]] = None

    @property
    def has_content(self) -> bool:
        return bool(self.content) and self.content != NO_CONTENT

    @property
    def needs_input(self) -> bool:
        return self.state == TaskState.INPUT_REQUIRED


@dataclass
class TaskExchange:
    """Result of one task call: the raw server document plus the ids and envelope used."""

    task_id: str
    session_id: Optional[str]
    envelope: Envelope
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def server_task_id(self) -> Optional[str]:
        result = self.payload.get("result")
        if isinstance(result, dict) and isinstance(result.get("id"), str) and result["id"]:
            return result["id"]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.payload,
            "taskId": self.task_id,
            "sessionId": self.session_id,
            "jsonRpcRequest": self.envelope.to_dict(),
        }


@dataclass
class AgentEndpoint:
    """A remote agent as registered by the user. Identity is ``id``."""

    id: str
    url: str
    streaming: bool = False
    name: Optional[str] = None
    card: Optional[Dict[str, Any]] = None

    def refresh(
        self,
        url: Optional[str] = None,
        streaming: Optional[bool] = None,
        name: Optional[str] = None,
        card: Optional[Dict[str, Any]] = None,
    ) -> "AgentEndpoint":
        """Apply edits from the user or a fresh capability card.

        Only ``id`` is fixed. Besides ``url`` and ``streaming``, the display
        ``name`` and the cached ``card`` may change too.
        """
        if url is not None:
            self.url = url
        if streaming is not None:
            self.streaming = streaming
        if name is not None:
            self.name = name
        if card is not None:
            self.card = card
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentEndpoint":
        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            raise AgentImportError(f"Invalid agent record {data.get('id') or data.get('name')!r}: missing url")
        return cls(
            id=str(data.get("id") or uuid4()),
            url=url,
            streaming=bool(data.get("streaming", False)),
            name=data.get("name"),
            card=data.get("card"),
        )

    def to_dict(self) -> Dict[str, Any]:
        _dict = {k: v for k, v in asdict(self).items() if v is not None}
        return _dict


@dataclass
class Session:
    agent_id: str
    session_id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class Task:
    task_id: str
    session_id: str


@dataclass
class ChatRecord:
    """One entry of an agent's chat history."""

    id: str
    sender: Sender
    content: str
    state: Optional[TaskState] = None
    artifacts: Optional[List[Artifact]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_exchange: Optional[Dict[str, Any]] = None
    pending: bool = False
    error: bool = False
    file: Optional[FileAttachment] = None

    def to_dict(self) -> Dict[str, Any]:
        _dict: Dict[str, Any] = {
            "id": self.id,
            "sender": self.sender.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.state is not None:
            _dict["state"] = self.state.value
        if self.artifacts is not None:
            _dict["artifacts"] = [artifact.to_dict() for artifact in self.artifacts]
        if self.raw_exchange is not None:
            _dict["rawExchange"] = self.raw_exchange
        if self.pending:
            _dict["pending"] = True
        if self.error:
            _dict["error"] = True
        if self.file is not None:
            _dict["file"] = {"name": self.file.name, "mimeType": self.file.mime_type}
        return _dict


class AgentProvider(BaseModel):
    organization: Optional[str] = None
    url: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class AgentCapabilities(BaseModel):
    streaming: bool = False
    push_notifications: bool = Field(default=False, alias="pushNotifications")
    state_transition_history: bool = Field(default=False, alias="stateTransitionHistory")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AgentSkill(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class CapabilityCard(BaseModel):
    """Capability document served at the agent's well-known path."""

    name: str
    description: Optional[str] = None
    url: Optional[str] = None
    version: Optional[str] = None
    provider: Optional[AgentProvider] = None
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    default_input_modes: List[str] = Field(default_factory=list, alias="defaultInputModes")
    default_output_modes: List[str] = Field(default_factory=list, alias="defaultOutputModes")
    skills: List[AgentSkill] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def supports_streaming(self) -> bool:
        return self.capabilities.streaming

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
