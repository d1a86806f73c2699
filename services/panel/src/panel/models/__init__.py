"""Database models package."""

from .allocation import Allocation
from .backup import Backup, BackupStatus
from .base import Base
from .location import Location
from .node import Node, generate_daemon_token, overallocated_ceiling
from .server import Server, ServerStatus, short_uuid

__all__ = [
    "Allocation",
    "Backup",
    "BackupStatus",
    "Base",
    "Location",
    "Node",
    "Server",
    "ServerStatus",
    "generate_daemon_token",
    "overallocated_ceiling",
    "short_uuid",
]
