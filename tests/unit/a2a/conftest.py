from typing import Any, Callable

import httpx
import pytest

from agentdesk.settings import AgentDeskSettings


@pytest.fixture
def settings() -> AgentDeskSettings:
    """Settings with the default protocol constants, independent of the environment."""
    return AgentDeskSettings(_env_file=None)


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], Any]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient whose requests are answered by ``handler``."""

    def _build(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build
