from typing import Any, Dict, List, Optional
from uuid import uuid4

from agentdesk.a2a.schemas import Envelope, FileAttachment, MessagePart, OutboundMessage
from agentdesk.utils.log import log_debug


class RequestBuilder:
    """Builds JSON-RPC envelopes for the task methods.

    Every envelope gets a fresh uuid4 call id; task and session ids only ever
    travel inside ``params``.
    """

    def build(self, method: str, params: Dict[str, Any]) -> Envelope:
        envelope = Envelope(id=str(uuid4()), method=method, params=params)
        log_debug(f"Created JSON-RPC request for {method} (id={envelope.id})")
        return envelope

    @staticmethod
    def build_message(text: str, file: Optional[FileAttachment] = None) -> OutboundMessage:
        parts = [MessagePart(kind="text", payload=text)]
        if file is not None:
            parts.append(MessagePart(kind="file", payload=file))
        return OutboundMessage(parts=parts)

    @staticmethod
    def build_task_params(
        task_id: str,
        session_id: Optional[str] = None,
        message: Optional[OutboundMessage] = None,
        accepted_output_modes: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"id": task_id}
        if session_id is not None:
            params["sessionId"] = session_id
        if accepted_output_modes is not None:
            params["acceptedOutputModes"] = list(accepted_output_modes)
        if message is not None:
            params["message"] = message.to_dict()
        return params
