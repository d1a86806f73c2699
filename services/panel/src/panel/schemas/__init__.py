"""Request and response schemas for the panel API."""

from .allocations import AllocationBatchCreate, AllocationRead
from .backups import BackupCreate, BackupLockUpdate, BackupRead
from .locations import LocationCreate, LocationRead
from .nodes import NodeCreate, NodeRead, NodeTokenRead, NodeUpdate
from .servers import PowerRequest, ServerCreate, ServerRead, SuspendRequest

__all__ = [
    "AllocationBatchCreate",
    "AllocationRead",
    "BackupCreate",
    "BackupLockUpdate",
    "BackupRead",
    "LocationCreate",
    "LocationRead",
    "NodeCreate",
    "NodeRead",
    "NodeTokenRead",
    "NodeUpdate",
    "PowerRequest",
    "ServerCreate",
    "ServerRead",
    "SuspendRequest",
]
