from pydantic import Field

from .base import WireModel


class BackupRequest(WireModel):
    backup_id: str
    name: str = Field(..., min_length=1)


class BackupReport(WireModel):
    """Outcome of a backup, reported by the agent once the archive is done."""

    successful: bool
    checksum: str | None = None
    size: int = 0
    error: str | None = None


class InstallReport(WireModel):
    successful: bool
