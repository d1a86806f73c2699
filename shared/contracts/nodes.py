"""Node-level payloads: registration, bootstrap configuration, system info."""

from pydantic import Field

from .base import WireModel


class NodeRegistration(WireModel):
    """Announcement an agent sends to the panel on startup."""

    node_id: str
    token: str
    listen_port: int = Field(..., ge=1, le=65535)


class SslConfiguration(WireModel):
    enabled: bool
    cert: str
    key: str


class ApiConfiguration(WireModel):
    host: str
    port: int
    ssl: SslConfiguration


class SftpConfiguration(WireModel):
    bind_port: int = 2022


class SystemConfiguration(WireModel):
    data: str
    sftp: SftpConfiguration


class NodeConfiguration(WireModel):
    """Bootstrap document the panel serves and the agent consumes."""

    debug: bool = False
    uuid: str
    token_id: str
    token: str
    api: ApiConfiguration
    system: SystemConfiguration
    allowed_mounts: list[str] = Field(default_factory=list)
    remote: str


class SystemInfo(WireModel):
    architecture: str = ""
    cpu_count: int = 0
    memory_total_bytes: int = 0
    os: str = ""
    kernel_version: str = ""
    docker_version: str = ""
    containers_total: int = 0
    containers_running: int = 0
    managed_servers: int = 0
