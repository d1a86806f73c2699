"""Server payloads shared by the panel's node transport and the agent API."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from .base import WireModel, utcnow


class PowerAction(str, Enum):
    """Power signals the agent accepts."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    KILL = "kill"


class AllocationSpec(WireModel):
    """One IP:port the container must listen on (TCP and UDP)."""

    ip: str
    port: int = Field(..., ge=1, le=65535)
    is_primary: bool = False


class MountSpec(WireModel):
    source: str
    target: str
    read_only: bool = False


class ServerSpec(WireModel):
    """Everything an agent needs to materialize a server container."""

    id: str
    uuid_short: str
    docker_image: str = Field(..., min_length=1)
    startup_cmd: str = ""
    environment: dict[str, str] = Field(default_factory=dict)
    memory_limit: int = Field(..., gt=0, description="Memory limit in MiB")
    disk_limit: int = Field(..., gt=0, description="Disk limit in MiB")
    cpu_limit: int = Field(..., gt=0, description="CPU limit in percent, 100 = one core")
    swap_limit: int = 0
    io_weight: int = 500
    allocations: list[AllocationSpec] = Field(default_factory=list)
    mounts: list[MountSpec] = Field(default_factory=list)

    @property
    def primary_allocation(self) -> AllocationSpec | None:
        for allocation in self.allocations:
            if allocation.is_primary:
                return allocation
        return self.allocations[0] if self.allocations else None


class ServerState(WireModel):
    """Agent-observed state of one managed container."""

    id: str
    container_id: str | None = None
    status: str
    started_at: datetime | None = None


class ServerStats(WireModel):
    """Point-in-time resource usage of one container."""

    cpu_percent: float = 0.0
    memory_bytes: int = 0
    memory_limit_bytes: int = 0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    uptime_seconds: int = 0
    collected_at: datetime = Field(default_factory=utcnow)


class CommandRequest(WireModel):
    command: str = Field(..., min_length=1)


class ConsoleLogs(WireModel):
    id: str
    lines: list[str] = Field(default_factory=list)
