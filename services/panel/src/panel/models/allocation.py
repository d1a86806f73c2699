"""Allocation model - one reservable IP:port on a node."""

import uuid

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Allocation(Base):
    __tablename__ = "allocations"
    __table_args__ = (UniqueConstraint("node_id", "ip", "port", name="uq_allocation_endpoint"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    node_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("nodes.id", ondelete="CASCADE"), index=True
    )
    ip: Mapped[str] = mapped_column(String(45))
    port: Mapped[int] = mapped_column(Integer)
    alias: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    # At most one server; NULL means free
    server_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("servers.id"), index=True)
    is_primary: Mapped[bool] = mapped_column(default=False)

    @property
    def is_assigned(self) -> bool:
        return self.server_id is not None
