from .backups import BackupReport, BackupRequest, InstallReport
from .base import WireModel, utcnow
from .nodes import (
    ApiConfiguration,
    NodeConfiguration,
    NodeRegistration,
    SftpConfiguration,
    SslConfiguration,
    SystemConfiguration,
    SystemInfo,
)
from .servers import (
    AllocationSpec,
    CommandRequest,
    ConsoleLogs,
    MountSpec,
    PowerAction,
    ServerSpec,
    ServerState,
    ServerStats,
)

__all__ = [
    "AllocationSpec",
    "ApiConfiguration",
    "BackupReport",
    "BackupRequest",
    "CommandRequest",
    "ConsoleLogs",
    "InstallReport",
    "MountSpec",
    "NodeConfiguration",
    "NodeRegistration",
    "PowerAction",
    "ServerSpec",
    "ServerState",
    "ServerStats",
    "SftpConfiguration",
    "SslConfiguration",
    "SystemConfiguration",
    "SystemInfo",
    "WireModel",
    "utcnow",
]
