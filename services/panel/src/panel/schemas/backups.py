"""Backup schemas."""

from datetime import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field


class BackupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=191)


class BackupLockUpdate(BaseModel):
    is_locked: bool


class BackupRead(BaseModel):
    id: uuid.UUID
    server_id: uuid.UUID
    name: str
    status: str
    checksum: str | None = None
    size: int
    is_locked: bool
    error_message: str | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
