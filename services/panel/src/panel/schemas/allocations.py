"""Allocation schemas."""

import ipaddress
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AllocationBatchCreate(BaseModel):
    """A port range on one IP; ports that already exist are skipped."""

    ip: str
    port_start: int = Field(..., ge=1, le=65535)
    port_end: int = Field(..., ge=1, le=65535)
    alias: str | None = None

    @field_validator("ip")
    @classmethod
    def validate_ip(cls, v: str) -> str:
        return str(ipaddress.ip_address(v))

    @model_validator(mode="after")
    def validate_range(self) -> "AllocationBatchCreate":
        if self.port_start > self.port_end:
            raise ValueError("port_start must not be greater than port_end")
        return self


class AllocationRead(BaseModel):
    id: uuid.UUID
    node_id: uuid.UUID
    ip: str
    port: int
    alias: str | None = None
    notes: str | None = None
    server_id: uuid.UUID | None = None
    is_primary: bool

    model_config = ConfigDict(from_attributes=True)
