"""Per-agent conversations: sessions, task continuation and chat history."""

import asyncio
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from agentdesk.a2a.client import AgentProtocolClient
from agentdesk.a2a.normalize import ResponseNormalizer, default_normalizer
from agentdesk.a2a.schemas import (
    AgentEndpoint,
    CapabilityCard,
    ChatRecord,
    FileAttachment,
    NormalizedResponse,
    Sender,
    Session,
    Task,
    TaskExchange,
    TaskState,
)
from agentdesk.exceptions import AgentNotFoundError
from agentdesk.settings import AgentDeskSettings, get_settings
from agentdesk.utils.log import log_debug, log_error, log_info
from agentdesk.utils.string import truncate

try:
    from httpx import AsyncClient
except ImportError:
    raise ImportError("`httpx` not installed. Please install using `pip install httpx`")

PLACEHOLDER_CONTENT = "..."

RecordListener = Callable[[str, ChatRecord], Any]


def decide_continuation(records: Sequence[ChatRecord]) -> Optional[str]:
    """Return the task id the next user message continues, or None for a new task.

    The only signal is the most recent agent-authored record: its task is
    continued when the agent left it in the input-required state.
    """
    for record in reversed(records):
        if record.sender != Sender.AGENT or record.pending:
            continue
        if record.state == TaskState.INPUT_REQUIRED:
            return record.id
        return None
    return None


class ConversationCoordinator:
    """Owns every agent's session, client and chat history.

    All history mutations go through ``_append``, ``_replace`` and
    ``_remove``, which run between awaits, so concurrent calls never observe
    a partial write. Sends to the same agent are serialized; at most one
    placeholder per agent is ever pending.

    Args:
        agents: Endpoints to register up front
        settings: Library settings shared by every client
        http_client: Shared httpx client (created and owned when omitted)
        normalizer: Response normalizer (default: the shared rule set)
        on_update: Called with (agent_id, record) after every append or replace
    """

    def __init__(
        self,
        agents: Optional[Iterable[AgentEndpoint]] = None,
        settings: Optional[AgentDeskSettings] = None,
        http_client: Optional[AsyncClient] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        on_update: Optional[RecordListener] = None,
    ):
        self.settings = settings or get_settings()
        self.normalizer = normalizer or default_normalizer
        self.on_update = on_update

        self._owns_http_client = http_client is None
        self._http_client = http_client or AsyncClient(timeout=self.settings.task_timeout)

        self._agents: Dict[str, AgentEndpoint] = {}
        self._clients: Dict[str, AgentProtocolClient] = {}
        self._sessions: Dict[str, Session] = {}
        self._chats: Dict[str, List[ChatRecord]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

        for endpoint in agents or []:
            self.add_agent(endpoint)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    # Agents and clients

    @property
    def agents(self) -> List[AgentEndpoint]:
        return list(self._agents.values())

    def get_agent(self, agent_id: str) -> AgentEndpoint:
        endpoint = self._agents.get(agent_id)
        if endpoint is None:
            raise AgentNotFoundError(agent_id)
        return endpoint

    def get_client(self, agent_id: str) -> AgentProtocolClient:
        self.get_agent(agent_id)
        return self._clients[agent_id]

    def add_agent(self, endpoint: AgentEndpoint) -> AgentEndpoint:
        if endpoint.id in self._agents:
            return self.update_agent(endpoint.id, url=endpoint.url, streaming=endpoint.streaming, name=endpoint.name)

        self._agents[endpoint.id] = endpoint
        self._clients[endpoint.id] = self._build_client(endpoint)
        log_info(f"Created client for agent {endpoint.name or endpoint.id}: {endpoint.url}")
        return endpoint

    def update_agent(
        self,
        agent_id: str,
        url: Optional[str] = None,
        streaming: Optional[bool] = None,
        name: Optional[str] = None,
        card: Optional[Dict[str, Any]] = None,
    ) -> AgentEndpoint:
        endpoint = self.get_agent(agent_id)
        previous_url = endpoint.url
        endpoint.refresh(url=url, streaming=streaming, name=name, card=card)

        if endpoint.url != previous_url:
            self._clients[agent_id] = self._build_client(endpoint)
            log_info(f"Updated client for agent {endpoint.name or agent_id}: {endpoint.url}")
        return endpoint

    def remove_agent(self, agent_id: str) -> AgentEndpoint:
        endpoint = self.get_agent(agent_id)
        del self._agents[agent_id]
        self._clients.pop(agent_id, None)
        self._sessions.pop(agent_id, None)
        self._chats.pop(agent_id, None)
        self._locks.pop(agent_id, None)
        log_info(f"Removed agent {endpoint.name or agent_id}")
        return endpoint

    def _build_client(self, endpoint: AgentEndpoint) -> AgentProtocolClient:
        return AgentProtocolClient(endpoint.url, settings=self.settings, http_client=self._http_client)

    async def fetch_card(self, agent_id: str) -> CapabilityCard:
        """Fetch the agent's capability card and refresh its streaming flag from it."""
        card = await self.get_client(agent_id).fetch_capability_card()
        self.update_agent(agent_id, streaming=card.supports_streaming, card=card.to_dict())
        return card

    async def check_liveness(self, agent_id: str) -> bool:
        return await self.get_client(agent_id).check_liveness()

    # Sessions

    def session(self, agent_id: str) -> Optional[Session]:
        return self._sessions.get(agent_id)

    def select_agent(self, agent_id: str) -> Session:
        """Make ``agent_id`` current, creating its session and history on first use."""
        self.get_agent(agent_id)
        self._chats.setdefault(agent_id, [])
        session = self._sessions.get(agent_id)
        if session is None:
            session = Session(agent_id=agent_id)
            self._sessions[agent_id] = session
            log_info(f"Created new session {session.session_id} for agent {agent_id}")
        return session

    def reset_session(self, agent_id: str) -> Session:
        """Start over with this agent: a new session id and an empty history."""
        self.get_agent(agent_id)
        previous = self._sessions.get(agent_id)
        session = Session(agent_id=agent_id)
        self._sessions[agent_id] = session
        self._chats[agent_id] = []
        log_info(
            f"Conversation reset for agent {agent_id}: "
            f"{previous.session_id if previous else None} -> {session.session_id}"
        )
        return session

    # History

    def history(self, agent_id: str) -> List[ChatRecord]:
        return list(self._chats.get(agent_id, []))

    def next_task(self, agent_id: str) -> Tuple[Task, bool]:
        """Decide the task for the next user message.

        Returns:
            (task, continuing): ``continuing`` is True when the task id was
            reused from an agent record awaiting input.
        """
        session = self.select_agent(agent_id)
        continuing_id = decide_continuation(self._chats[agent_id])
        if continuing_id is not None:
            log_info(f"Continuing existing task {continuing_id}")
            return Task(task_id=continuing_id, session_id=session.session_id), True
        return Task(task_id=str(uuid4()), session_id=session.session_id), False

    def _index_of(self, agent_id: str, record_id: str) -> Optional[int]:
        for index, record in enumerate(self._chats.get(agent_id, [])):
            if record.id == record_id:
                return index
        return None

    def _find(self, agent_id: str, record_id: str) -> Optional[ChatRecord]:
        index = self._index_of(agent_id, record_id)
        return None if index is None else self._chats[agent_id][index]

    def _notify(self, agent_id: str, record: ChatRecord) -> None:
        if self.on_update is not None:
            self.on_update(agent_id, record)

    def _append(self, agent_id: str, record: ChatRecord) -> ChatRecord:
        self._chats.setdefault(agent_id, []).append(record)
        self._notify(agent_id, record)
        return record

    def _replace(self, agent_id: str, record_id: str, record: ChatRecord) -> bool:
        index = self._index_of(agent_id, record_id)
        if index is None:
            # History was reset while the call was in flight
            log_debug(f"Record {record_id} no longer in history for agent {agent_id}")
            return False
        self._chats[agent_id][index] = record
        self._notify(agent_id, record)
        return True

    def _remove(self, agent_id: str, record_id: str) -> bool:
        index = self._index_of(agent_id, record_id)
        if index is None:
            return False
        del self._chats[agent_id][index]
        return True

    def _lock_for(self, agent_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[agent_id] = lock
        return lock

    # Sending

    async def send_message(self, agent_id: str, text: str, file: Optional[FileAttachment] = None) -> ChatRecord:
        """Send a user message to an agent and fold the answer into its history.

        Returns:
            The final agent record, or the error record when the call failed.
        """
        endpoint = self.get_agent(agent_id)
        async with self._lock_for(agent_id):
            client = self.get_client(agent_id)
            task, _ = self.next_task(agent_id)
            log_info(f"Sending message to {endpoint.name or agent_id}: {truncate(text)}")

            method = self.settings.stream_method if endpoint.streaming else self.settings.send_method
            preview = client.build_task_envelope(method, text, file, task.session_id, task.task_id)
            user_record = self._append(
                agent_id,
                ChatRecord(
                    id=str(uuid4()),
                    sender=Sender.USER,
                    content=text,
                    file=file,
                    raw_exchange=preview.to_dict(),
                ),
            )
            placeholder = self._append(
                agent_id,
                ChatRecord(id=f"loading-{uuid4()}", sender=Sender.AGENT, content=PLACEHOLDER_CONTENT, pending=True),
            )

            try:
                if endpoint.streaming:
                    exchange = await client.send_task_streaming(
                        text,
                        file,
                        session_id=task.session_id,
                        task_id=task.task_id,
                        on_chunk=lambda value: self._apply_chunk(agent_id, placeholder.id, value),
                    )
                else:
                    exchange = await client.send_task(text, file, session_id=task.session_id, task_id=task.task_id)
            except asyncio.CancelledError:
                self._remove(agent_id, placeholder.id)
                raise
            except Exception as e:
                log_error(f"Error sending message to {agent_id}: {e}")
                error_record = ChatRecord(
                    id=str(uuid4()),
                    sender=Sender.AGENT,
                    content=f"Error: {e}",
                    state=TaskState.ERROR,
                    error=True,
                )
                if not self._remove(agent_id, placeholder.id):
                    # History was reset while the call was in flight
                    log_debug(f"Dropping error record for agent {agent_id}: placeholder no longer in history")
                    return error_record
                return self._append(agent_id, error_record)

            # The preview was built before the call; record what was actually sent
            current_user_record = self._find(agent_id, user_record.id)
            if current_user_record is not None:
                self._replace(
                    agent_id, user_record.id, replace(current_user_record, raw_exchange=exchange.envelope.to_dict())
                )

            final = self._final_record(exchange, self._find(agent_id, placeholder.id))
            self._replace(agent_id, placeholder.id, final)
            log_info(f"Agent {agent_id} answered: state={final.state}, content={truncate(final.content)}")
            return final

    def _apply_chunk(self, agent_id: str, placeholder_id: str, value: Any) -> None:
        current = self._find(agent_id, placeholder_id)
        if current is None:
            return
        normalized = self.normalizer.normalize(value)
        log_debug(f"Stream chunk for {agent_id}: state={normalized.state}, content={truncate(normalized.content)}")
        self._replace(
            agent_id,
            placeholder_id,
            replace(
                current,
                content=normalized.content if normalized.has_content else current.content,
                state=normalized.state or current.state,
                artifacts=normalized.artifacts if normalized.artifacts is not None else current.artifacts,
                raw_exchange=value if isinstance(value, dict) else {"result": value},
            ),
        )

    def _final_record(self, exchange: TaskExchange, streamed: Optional[ChatRecord]) -> ChatRecord:
        normalized: NormalizedResponse = self.normalizer.normalize(exchange.payload)
        content = normalized.content
        state = normalized.state
        artifacts = normalized.artifacts
        if streamed is not None:
            if not normalized.has_content and streamed.content != PLACEHOLDER_CONTENT:
                content = streamed.content
            state = state or streamed.state
            artifacts = artifacts if artifacts is not None else streamed.artifacts

        return ChatRecord(
            id=exchange.server_task_id or exchange.task_id,
            sender=Sender.AGENT,
            content=content,
            state=state,
            artifacts=artifacts,
            raw_exchange=dict(exchange.payload),
        )
