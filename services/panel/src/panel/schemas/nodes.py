"""Node schemas."""

from datetime import datetime
from typing import Any, Literal
import uuid

from pydantic import BaseModel, ConfigDict, Field


class NodeBase(BaseModel):
    """Fields an administrator sets on a node."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    location_id: uuid.UUID
    fqdn: str = Field(..., min_length=1, max_length=255)
    scheme: Literal["http", "https"] = "https"
    daemon_port: int = Field(default=8443, ge=1, le=65535)
    daemon_sftp_port: int = Field(default=2022, ge=1, le=65535)
    daemon_base: str | None = None
    memory_total: int = Field(..., gt=0)
    memory_overalloc: int = Field(default=0, ge=0)
    disk_total: int = Field(..., gt=0)
    disk_overalloc: int = Field(default=0, ge=0)
    cpu_total: int = Field(..., gt=0)


class NodeCreate(NodeBase):
    pass


class NodeUpdate(BaseModel):
    """Partial update; omitted fields stay as they are."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    memory_total: int | None = Field(default=None, gt=0)
    memory_overalloc: int | None = Field(default=None, ge=0)
    disk_total: int | None = Field(default=None, gt=0)
    disk_overalloc: int | None = Field(default=None, ge=0)
    cpu_total: int | None = Field(default=None, gt=0)
    maintenance_mode: bool | None = None


class NodeRead(NodeBase):
    """Node with capacity bookkeeping. The daemon token itself is never listed."""

    id: uuid.UUID
    daemon_base: str
    daemon_token_id: str
    memory_allocated: int
    disk_allocated: int
    cpu_allocated: int
    is_online: bool
    maintenance_mode: bool
    last_checked_at: datetime | None = None
    system_info: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class NodeTokenRead(BaseModel):
    token_id: str
    token: str
