"""Panel configuration with fail-fast validation."""

from functools import lru_cache

from pydantic import Field

from shared.config import BaseSettings, database_url_field, panel_url_field, redis_url_field


class PanelSettings(BaseSettings):
    """Control plane settings, read from the environment."""

    service_name: str = "panel"

    database_url: str = database_url_field()
    redis_url: str = redis_url_field(required=False)
    panel_url: str = panel_url_field(required=False)

    node_request_timeout: float = Field(
        default=10.0, gt=0, description="Seconds to wait for a node agent to answer"
    )
    status_sync_interval: int = Field(
        default=30, ge=1, description="Seconds between status reconciliation passes"
    )

    default_backup_limit: int = Field(default=2, ge=0)
    daemon_data_dir: str = "/var/lib/gameplane/servers"
    sftp_port: int = 2022

    # Upper bounds for a single server's limits
    max_memory_limit: int = Field(default=262144, description="MiB")
    max_disk_limit: int = Field(default=4194304, description="MiB")
    max_cpu_limit: int = Field(default=6400, description="Percent, 100 = one core")


@lru_cache
def get_settings() -> PanelSettings:
    """Get cached settings instance."""
    return PanelSettings()
