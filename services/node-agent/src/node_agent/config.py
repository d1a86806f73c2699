"""Agent configuration, read from AGENT_* variables and agent.env."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from shared.config import BaseSettings, panel_url_field, redis_url_field


class AgentSettings(BaseSettings):
    """Settings for one node agent.

    `node-agent configure` writes these into agent.env from the panel's
    configuration document.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file="agent.env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = "node-agent"

    # Identity
    node_id: str = Field(..., description="Node UUID assigned by the panel")
    token: str = Field(..., description="Daemon token the panel authenticates with")
    token_id: str = Field(default="", description="Public prefix of the daemon token")
    panel_url: str = panel_url_field(required=False)
    panel_timeout: float = Field(default=10.0, gt=0)

    # API
    api_host: str = "0.0.0.0"  # noqa: S104
    api_port: int = Field(default=8443, ge=1, le=65535)

    # Storage and console broker
    data_path: str = "/var/lib/gameplane/servers"
    backup_path: str = "/var/lib/gameplane/backups"
    redis_url: str = redis_url_field(required=False)

    # Docker
    docker_network: str = "bridge"
    docker_dns: list[str] = Field(default_factory=lambda: ["1.1.1.1", "8.8.8.8"])
    docker_timeout: float = Field(default=60.0, gt=0, description="Seconds per docker call")
    stop_timeout: int = Field(default=30, ge=0, description="Grace period before SIGKILL")
    container_user: str = "container"
    # "source:target" or "source:target:ro", mounted into every container
    extra_mounts: list[str] = Field(default_factory=list)

    # Loops
    health_interval: float = Field(default=30.0, gt=0)
    metrics_interval: float = Field(default=5.0, gt=0)

    # Registration with the panel
    register_retry_interval: float = Field(default=30.0, gt=0)
    register_max_retries: int = Field(default=10, ge=1)

    @property
    def callback_token(self) -> str:
        """Credential for panel callbacks: `<token_id>.<token>`."""
        return f"{self.token_id or self.token[:16]}.{self.token}"


@lru_cache
def get_settings() -> AgentSettings:
    """Get cached settings instance."""
    return AgentSettings()
