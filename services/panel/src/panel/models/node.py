"""Node model - a worker machine running the node agent."""

from datetime import datetime
import secrets
import uuid

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

TOKEN_ID_LENGTH = 16


def overallocated_ceiling(total: int, overalloc_pct: int) -> int:
    """Largest allocatable amount: floor(total * (1 + pct / 100))."""
    return total * (100 + overalloc_pct) // 100


def generate_daemon_token() -> tuple[str, str]:
    """Return (token_id, token). The id is the public prefix of the token."""
    token = secrets.token_hex(32)
    return token[:TOKEN_ID_LENGTH], token


class Node(Base):
    """Worker machine with capacity bookkeeping.

    The *_allocated counters change only through PlacementEngine.reserve
    and PlacementEngine.release.
    """

    __tablename__ = "nodes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    location_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("locations.id"), index=True)

    # Agent endpoint
    fqdn: Mapped[str] = mapped_column(String(255), unique=True)
    scheme: Mapped[str] = mapped_column(String(10), default="https")
    daemon_port: Mapped[int] = mapped_column(Integer, default=8443)
    daemon_sftp_port: Mapped[int] = mapped_column(Integer, default=2022)
    daemon_base: Mapped[str] = mapped_column(String(255), default="/var/lib/gameplane/servers")
    daemon_token_id: Mapped[str] = mapped_column(String(TOKEN_ID_LENGTH), unique=True)
    daemon_token: Mapped[str] = mapped_column(String(64))

    # Capacity (MiB for memory/disk, percent for CPU where 100 = one core)
    memory_total: Mapped[int] = mapped_column(Integer)
    memory_overalloc: Mapped[int] = mapped_column(Integer, default=0)
    memory_allocated: Mapped[int] = mapped_column(Integer, default=0)
    disk_total: Mapped[int] = mapped_column(Integer)
    disk_overalloc: Mapped[int] = mapped_column(Integer, default=0)
    disk_allocated: Mapped[int] = mapped_column(Integer, default=0)
    cpu_total: Mapped[int] = mapped_column(Integer)
    cpu_allocated: Mapped[int] = mapped_column(Integer, default=0)

    # Reachability
    is_online: Mapped[bool] = mapped_column(default=False)
    maintenance_mode: Mapped[bool] = mapped_column(default=False)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    system_info: Mapped[dict] = mapped_column(JSON, default=dict)

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.fqdn}:{self.daemon_port}"

    @property
    def available_memory(self) -> int:
        ceiling = overallocated_ceiling(self.memory_total, self.memory_overalloc)
        return ceiling - self.memory_allocated

    @property
    def available_disk(self) -> int:
        return overallocated_ceiling(self.disk_total, self.disk_overalloc) - self.disk_allocated

    @property
    def available_cpu(self) -> int:
        # CPU is a hard quota, never overallocated
        return self.cpu_total - self.cpu_allocated

    def regenerate_token(self) -> None:
        self.daemon_token_id, self.daemon_token = generate_daemon_token()
