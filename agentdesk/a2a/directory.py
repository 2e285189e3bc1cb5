"""The user's list of agents, in the shape the application persists it.

Storage is the application's job; this module only materializes, edits,
exports and imports the agent records, and registers new agents from their
capability cards.
"""

import json
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from agentdesk.a2a.client import AgentProtocolClient
from agentdesk.a2a.schemas import AgentEndpoint
from agentdesk.exceptions import AgentImportError, AgentNotFoundError
from agentdesk.settings import AgentDeskSettings
from agentdesk.utils.log import log_info
from agentdesk.utils.string import is_blank

try:
    from httpx import AsyncClient
except ImportError:
    raise ImportError("`httpx` not installed. Please install using `pip install httpx`")

DEFAULT_AGENT = AgentEndpoint(id="1", name="Local Agent", url="http://localhost:10000", streaming=True)


class AgentDirectory:
    """Ordered collection of AgentEndpoints keyed by id."""

    def __init__(self, agents: Optional[Iterable[AgentEndpoint]] = None):
        self._agents: Dict[str, AgentEndpoint] = {}
        for agent in agents or []:
            self._agents[agent.id] = agent

    @classmethod
    def from_records(cls, records: Optional[List[Dict[str, Any]]]) -> "AgentDirectory":
        """Materialize stored records. An empty store yields the default local agent.

        Raises:
            AgentImportError: If a stored record has no url
        """
        if not records:
            default = AgentEndpoint(**DEFAULT_AGENT.to_dict())
            log_info(f"Created default agent {default.name} at {default.url}")
            return cls([default])
        return cls(AgentEndpoint.from_dict(record) for record in records)

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self):
        return iter(list(self._agents.values()))

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def get(self, agent_id: str) -> AgentEndpoint:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def add(self, agent: AgentEndpoint) -> AgentEndpoint:
        self._agents[agent.id] = agent
        log_info(f"Added agent {agent.name or agent.id} at {agent.url}")
        return agent

    def update(self, agent_id: str, **changes: Any) -> AgentEndpoint:
        return self.get(agent_id).refresh(**changes)

    def remove(self, agent_id: str) -> AgentEndpoint:
        agent = self.get(agent_id)
        del self._agents[agent_id]
        log_info(f"Removed agent {agent.name or agent_id}")
        return agent

    def records(self) -> List[Dict[str, Any]]:
        return [agent.to_dict() for agent in self._agents.values()]

    def export_json(self) -> str:
        return json.dumps(self.records(), indent=2)

    def import_json(self, raw: str) -> List[AgentEndpoint]:
        """Replace the directory with agents from an exported JSON array.

        Raises:
            AgentImportError: If the text is not a JSON array of agents with a name and url
        """
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            raise AgentImportError(f"Failed to import agents: {e}") from e

        if not isinstance(parsed, list):
            raise AgentImportError("Failed to import agents: Invalid format: agents must be an array")

        for index, record in enumerate(parsed):
            if not isinstance(record, dict) or is_blank(record.get("name")) or is_blank(record.get("url")):
                raise AgentImportError(
                    f"Failed to import agents: Invalid agent at position {index}: missing required fields"
                )

        agents = [AgentEndpoint.from_dict(record) for record in parsed]
        self._agents = {agent.id: agent for agent in agents}
        log_info(f"Imported {len(agents)} agent(s)")
        return agents


async def discover_agent(
    url: str,
    agent_id: Optional[str] = None,
    settings: Optional[AgentDeskSettings] = None,
    http_client: Optional[AsyncClient] = None,
) -> AgentEndpoint:
    """Build an AgentEndpoint for ``url`` from its capability card.

    Raises:
        EndpointError, DecodeError, TransportError: If the card cannot be fetched
    """
    async with AgentProtocolClient(url, settings=settings, http_client=http_client) as client:
        card = await client.fetch_capability_card()

    endpoint = AgentEndpoint(
        id=agent_id or str(uuid4()),
        url=client.url,
        streaming=card.supports_streaming,
        name=card.name,
        card=card.to_dict(),
    )
    log_info(f"Discovered agent {endpoint.name} at {endpoint.url} (streaming={endpoint.streaming})")
    return endpoint
