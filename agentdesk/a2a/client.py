"""Agent protocol client.

Talks JSON-RPC over HTTP to a single agent endpoint: capability discovery,
blocking task submission, streaming task submission and task lookup.

Example:
    ```python
    from agentdesk.a2a import AgentProtocolClient

    async with AgentProtocolClient("http://localhost:10000") as client:
        card = await client.fetch_capability_card()
        exchange = await client.send_task_streaming(
            "Hello!",
            on_chunk=lambda value: print(normalize_response(value).content),
        )
    ```
"""

from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from agentdesk.a2a.request import RequestBuilder
from agentdesk.a2a.schemas import CapabilityCard, Envelope, FileAttachment, TaskExchange
from agentdesk.a2a.stream import StreamFrameReconstructor, call_handler
from agentdesk.exceptions import DecodeError, EndpointError, TransportError
from agentdesk.settings import AgentDeskSettings, get_settings
from agentdesk.utils.log import log_debug, log_error, log_info
from agentdesk.utils.string import truncate

try:
    from httpx import AsyncClient, Response, TimeoutException
    from httpx import TransportError as HTTPXTransportError
except ImportError:
    raise ImportError("`httpx` not installed. Please install using `pip install httpx`")

__all__ = ["AgentProtocolClient"]

JSON_CONTENT_TYPE = "application/json"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

ChunkHandler = Callable[[Any], Any]


def _new_id() -> str:
    return str(uuid4())


class AgentProtocolClient:
    """Async client for one agent endpoint.

    Holds nothing between calls except the endpoint url and the HTTP
    connection pool. Errors are raised to the caller; the client never retries.

    Attributes:
        url: Endpoint url; JSON-RPC calls are POSTed here
        settings: Method names, card path and timeouts
    """

    def __init__(
        self,
        url: str,
        settings: Optional[AgentDeskSettings] = None,
        http_client: Optional[AsyncClient] = None,
    ):
        """Initialize AgentProtocolClient.

        Args:
            url: Agent endpoint url (e.g. "http://localhost:10000")
            settings: Library settings (default: from the environment)
            http_client: Shared httpx client. It is not closed by this client.
        """
        self.url = url.rstrip("/")
        self.settings = settings or get_settings()
        self.request_builder = RequestBuilder()
        self._http_client: Optional[AsyncClient] = http_client
        self._owns_http_client = http_client is None

    async def __aenter__(self) -> "AgentProtocolClient":
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> "AgentProtocolClient":
        """Create the HTTP client if there is none yet.

        Returns:
            AgentProtocolClient: self for method chaining
        """
        if not self._http_client:
            self._http_client = AsyncClient(timeout=self.settings.task_timeout)
            self._owns_http_client = True
        return self

    async def close(self) -> None:
        """Close HTTP connections opened by this client."""
        if self._http_client and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _client(self) -> AsyncClient:
        if not self._http_client:
            await self.connect()
        return self._http_client  # type: ignore

    @property
    def card_url(self) -> str:
        return f"{self.url}{self.settings.card_path}"

    def build_task_envelope(
        self,
        method: str,
        message: str,
        file: Optional[FileAttachment] = None,
        session_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Envelope:
        """Build the envelope for a task submit. A missing task id is generated."""
        outbound = self.request_builder.build_message(message, file)
        params = self.request_builder.build_task_params(
            task_id=task_id or _new_id(),
            session_id=session_id,
            message=outbound,
            accepted_output_modes=self.settings.accepted_output_modes,
        )
        return self.request_builder.build(method, params)

    async def fetch_capability_card(self, timeout: Optional[float] = None) -> CapabilityCard:
        """Fetch the agent's capability card from the well-known path.

        Args:
            timeout: Request timeout in seconds (default: settings.card_timeout)

        Raises:
            EndpointError: On a non-2xx response
            DecodeError: If the body is not a JSON capability document
            TransportError: If the endpoint cannot be reached
        """
        client = await self._client()
        log_info(f"Fetching agent card from {self.card_url}")

        try:
            response = await client.get(
                self.card_url,
                headers={"Accept": JSON_CONTENT_TYPE},
                timeout=timeout if timeout is not None else self.settings.card_timeout,
            )
        except (TimeoutException, HTTPXTransportError) as e:
            raise self._transport_error("fetch agent card", e) from e

        if not response.is_success:
            log_error(f"Failed to get agent card: {response.status_code} {response.reason_phrase}")
            raise EndpointError(
                status=response.status_code,
                status_text=response.reason_phrase,
                body=response.text,
                operation="get agent card",
            )

        data = self._decode_json(response)
        try:
            card = CapabilityCard.model_validate(data)
        except ValidationError as e:
            raise DecodeError(raw=response.text, message=f"Invalid agent card: {e}") from e

        log_info(f"Retrieved agent card: {card.name}")
        return card

    async def check_liveness(self, timeout: Optional[float] = None) -> bool:
        """Poll the capability card with a short timeout. Any failure means offline."""
        try:
            await self.fetch_capability_card(
                timeout=timeout if timeout is not None else self.settings.liveness_timeout
            )
        except (EndpointError, DecodeError, TransportError) as e:
            log_debug(f"Agent at {self.url} is offline: {e}")
            return False
        return True

    async def send_task(
        self,
        message: str,
        file: Optional[FileAttachment] = None,
        session_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> TaskExchange:
        """Submit a task and wait for the single JSON result.

        Args:
            message: Text of the user message
            file: Optional attachment embedded as a file part
            session_id: Session to submit under (generated when missing)
            task_id: Task id to continue (generated when missing)

        Returns:
            TaskExchange with the raw result and the transmitted envelope

        Raises:
            EndpointError: On a non-2xx response, carrying the body text
            DecodeError: If the body is not JSON
            TransportError: If the endpoint cannot be reached
        """
        task_id = task_id or _new_id()
        session_id = session_id or _new_id()
        log_info(
            f"Sending task {task_id} (session {session_id}): {truncate(message)}"
            + (f" with file {file.name}" if file else "")
        )

        envelope = self.build_task_envelope(self.settings.send_method, message, file, session_id, task_id)
        payload = await self._post_json(envelope, operation="send task")
        log_debug(f"Received task response for {task_id}: {truncate(payload)}")
        return TaskExchange(task_id=task_id, session_id=session_id, envelope=envelope, payload=payload)

    async def send_task_streaming(
        self,
        message: str,
        file: Optional[FileAttachment] = None,
        session_id: Optional[str] = None,
        task_id: Optional[str] = None,
        on_chunk: Optional[ChunkHandler] = None,
    ) -> TaskExchange:
        """Submit a task asking for a streamed response.

        ``on_chunk`` receives every value reconstructed from the stream, in
        order, before this call returns. A server that answers with a plain
        JSON document instead of a stream produces exactly one callback.

        Returns:
            TaskExchange whose payload is the last streamed value, or the
            result of an explicit get-task call when the stream carried none.

        Raises:
            EndpointError: On a non-2xx response, carrying the body text
            DecodeError: If a declared JSON document does not parse
            TransportError: If the endpoint cannot be reached or the stream drops
        """
        task_id = task_id or _new_id()
        session_id = session_id or _new_id()
        log_info(
            f"Sending streaming task {task_id} (session {session_id}): {truncate(message)}"
            + (f" with file {file.name}" if file else "")
        )

        envelope = self.build_task_envelope(self.settings.stream_method, message, file, session_id, task_id)
        log_debug(f"Streaming JSON-RPC payload: {truncate(envelope.to_dict(), 500)}")

        client = await self._client()
        try:
            async with client.stream(
                "POST",
                self.url,
                json=envelope.to_dict(),
                headers={"Content-Type": JSON_CONTENT_TYPE, "Accept": EVENT_STREAM_CONTENT_TYPE},
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise self._endpoint_error(response, "send streaming task")

                content_type = response.headers.get("content-type", "")
                log_debug(f"Response content type: {content_type}")
                reconstructor = StreamFrameReconstructor(single_document=JSON_CONTENT_TYPE in content_type)

                async for chunk in response.aiter_bytes():
                    for value in reconstructor.feed(chunk):
                        await call_handler(on_chunk, value)
                for value in reconstructor.close():
                    await call_handler(on_chunk, value)
        except (TimeoutException, HTTPXTransportError) as e:
            raise self._transport_error("send streaming task", e) from e

        if reconstructor.emitted > 0:
            log_info(f"Stream completed for task {task_id} ({reconstructor.emitted} values)")
            payload = reconstructor.last_value
        else:
            log_info(f"Stream for task {task_id} carried no data, fetching final task state")
            payload = await self.get_task(task_id)

        if not isinstance(payload, dict):
            payload = {"result": payload}
        return TaskExchange(task_id=task_id, session_id=session_id, envelope=envelope, payload=payload)

    async def get_task(self, task_id: str) -> Dict[str, Any]:
        """Fetch the current state of a task.

        Raises:
            EndpointError: On a non-2xx response
            DecodeError: If the body is not JSON
            TransportError: If the endpoint cannot be reached
        """
        log_info(f"Getting task state for {task_id}")
        params = self.request_builder.build_task_params(task_id=task_id)
        envelope = self.request_builder.build(self.settings.get_method, params)
        payload = await self._post_json(envelope, operation="get task")
        log_debug(f"Retrieved task state for {task_id}: {truncate(payload)}")
        return payload

    async def _post_json(self, envelope: Envelope, operation: str) -> Dict[str, Any]:
        client = await self._client()
        try:
            response = await client.post(
                self.url,
                json=envelope.to_dict(),
                headers={"Content-Type": JSON_CONTENT_TYPE},
            )
        except (TimeoutException, HTTPXTransportError) as e:
            raise self._transport_error(operation, e) from e

        if not response.is_success:
            raise self._endpoint_error(response, operation)

        data = self._decode_json(response)
        if not isinstance(data, dict):
            data = {"result": data}
        return data

    @staticmethod
    def _decode_json(response: Response) -> Union[Dict[str, Any], Any]:
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(raw=response.text, message=f"Response body is not valid JSON: {e}") from e

    def _endpoint_error(self, response: Response, operation: str) -> EndpointError:
        body = response.text
        log_error(
            f"Error response from agent for {operation}: "
            f"{response.status_code} {response.reason_phrase} {truncate(body)}"
        )
        return EndpointError(
            status=response.status_code,
            status_text=response.reason_phrase,
            body=body,
            operation=operation,
        )

    def _transport_error(self, operation: str, error: Exception) -> TransportError:
        if isinstance(error, TimeoutException):
            message = f"Request to agent at {self.url} timed out ({operation})"
        else:
            message = f"Failed to reach agent at {self.url} ({operation}): {error}"
        log_error(message)
        return TransportError(message=message, original_error=error)
