"""
agentdesk configuration.

Library settings come from environment variables (prefix ``AGENTDESK_``) or a
``.env`` file. The user settings record is the flat document the surrounding
application persists; it is only validated and applied here.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentdesk.utils.log import log_debug, set_log_level_to_debug, set_logging_enabled


class AgentDeskSettings(BaseSettings):
    """Protocol constants and timeouts for talking to agents."""

    # Capability discovery
    card_path: str = Field(default="/.well-known/agent.json", description="Path of the capability card")

    # JSON-RPC method names
    send_method: str = Field(default="tasks/send", description="Method for a blocking task submit")
    stream_method: str = Field(default="send_task_streaming", description="Method for a streaming task submit")
    get_method: str = Field(default="get_task", description="Method for fetching task state")
    accepted_output_modes: List[str] = Field(default_factory=lambda: ["text"])

    # Timeouts in seconds. None disables the timeout.
    task_timeout: Optional[float] = Field(default=300.0, description="Timeout for task execution calls")
    card_timeout: float = Field(default=5.0, description="Timeout for capability card fetches")
    liveness_timeout: float = Field(default=3.0, description="Timeout for endpoint liveness polling")

    debug: bool = Field(default=False, description="Enable debug logging")

    model_config = SettingsConfigDict(env_prefix="AGENTDESK_", env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> AgentDeskSettings:
    """Get the library settings, loading from environment variables."""
    settings = AgentDeskSettings()
    if settings.debug:
        set_log_level_to_debug()
    return settings


class UserSettings(BaseModel):
    """Flat user settings record persisted by the surrounding application."""

    log_enabled: bool = Field(default=True, alias="logEnabled")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> "UserSettings":
        """Merge a stored record over the defaults. Unknown keys are dropped."""
        return cls.model_validate(record or {})

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def apply(self) -> None:
        set_logging_enabled(self.log_enabled)
        log_debug(f"Applied user settings: {self.to_record()}")
