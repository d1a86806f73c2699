"""Server model - one game-server instance."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ServerStatus(str, Enum):
    """Server lifecycle states."""

    INSTALLING = "installing"
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    RESTARTING = "restarting"
    ERROR = "error"
    SUSPENDED = "suspended"
    # Delete has begun; only the delete saga may touch the row now
    DELETING = "deleting"


def short_uuid(value: uuid.UUID) -> str:
    return str(value)[:8]


class Server(Base):
    __tablename__ = "servers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    uuid_short: Mapped[str] = mapped_column(String(8), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(191))
    description: Mapped[str | None] = mapped_column(Text)
    owner_id: Mapped[str | None] = mapped_column(String(64), index=True)

    node_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("nodes.id"), index=True)
    # Primary allocation, mirrored by Allocation.is_primary. No FK to avoid a
    # servers <-> allocations cycle.
    allocation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Limits: MiB, MiB, percent (100 = one core)
    memory_limit: Mapped[int] = mapped_column(Integer, default=1024)
    disk_limit: Mapped[int] = mapped_column(Integer, default=10240)
    cpu_limit: Mapped[int] = mapped_column(Integer, default=100)
    swap_limit: Mapped[int] = mapped_column(Integer, default=0)
    io_weight: Mapped[int] = mapped_column(Integer, default=500)

    docker_image: Mapped[str] = mapped_column(String(255))
    startup_cmd: Mapped[str] = mapped_column(Text, default="")
    environment: Mapped[dict] = mapped_column(JSON, default=dict)

    status: Mapped[str] = mapped_column(String(20), default=ServerStatus.INSTALLING.value)
    suspended: Mapped[bool] = mapped_column(default=False)
    suspension_reason: Mapped[str | None] = mapped_column(Text)

    container_id: Mapped[str | None] = mapped_column(String(64))
    installed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    backup_limit: Mapped[int] = mapped_column(Integer, default=2)
