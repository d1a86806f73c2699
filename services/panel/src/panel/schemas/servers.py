"""Server schemas."""

from datetime import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field

from shared.contracts import PowerAction


class ServerCreate(BaseModel):
    """Request to place and create a server on a node."""

    name: str = Field(..., min_length=1, max_length=191)
    description: str | None = None
    owner_id: str | None = None
    node_id: uuid.UUID
    memory_limit: int = Field(default=1024, gt=0, description="MiB")
    disk_limit: int = Field(default=10240, gt=0, description="MiB")
    cpu_limit: int = Field(default=100, gt=0, description="Percent, 100 = one core")
    swap_limit: int = Field(default=0, ge=-1)
    io_weight: int = Field(default=500, ge=10, le=1000)
    docker_image: str = Field(..., min_length=1, max_length=255)
    startup_cmd: str = ""
    environment: dict[str, str] = Field(default_factory=dict)
    backup_limit: int | None = Field(default=None, ge=0)


class ServerRead(BaseModel):
    id: uuid.UUID
    uuid_short: str
    name: str
    description: str | None = None
    owner_id: str | None = None
    node_id: uuid.UUID
    allocation_id: uuid.UUID | None = None
    memory_limit: int
    disk_limit: int
    cpu_limit: int
    swap_limit: int
    io_weight: int
    docker_image: str
    startup_cmd: str
    environment: dict[str, str]
    status: str
    suspended: bool
    suspension_reason: str | None = None
    container_id: str | None = None
    installed_at: datetime | None = None
    last_started_at: datetime | None = None
    backup_limit: int

    model_config = ConfigDict(from_attributes=True)


class PowerRequest(BaseModel):
    action: PowerAction


class SuspendRequest(BaseModel):
    reason: str = Field(..., min_length=1)
