"""In-memory registry of the servers this agent supervises.

Two lock levels:

- the registry lock guards the mapping itself (insert, remove, snapshot);
  it is never held across a docker call;
- each entry has its own lock, held by lifecycle operations for their
  whole duration and by the health/metrics loops only to write a field.

A slow docker call on one server therefore never blocks reads of the
registry or work on another server.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from shared.contracts import ServerSpec, ServerState, ServerStats

from .errors import ServerAlreadyExists, ServerNotFound


@dataclass(eq=False)
class ServerEntry:
    id: str
    spec: ServerSpec | None = None
    container_id: str | None = None
    # Docker state string: created, running, exited, ...
    status: str = "created"
    started_at: datetime | None = None
    stats: ServerStats = field(default_factory=ServerStats)
    # Bumped by every lifecycle operation; loop writes from an older generation are dropped
    generation: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    def to_state(self) -> ServerState:
        return ServerState(
            id=self.id,
            container_id=self.container_id,
            status=self.status,
            started_at=self.started_at,
        )


class ServerRegistry:
    def __init__(self) -> None:
        self._entries: dict[str, ServerEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, server_id: str) -> bool:
        return server_id in self._entries

    async def insert(self, entry: ServerEntry) -> None:
        async with self._lock:
            if entry.id in self._entries:
                raise ServerAlreadyExists(f"Server {entry.id} already exists")
            self._entries[entry.id] = entry

    async def put(self, entry: ServerEntry) -> None:
        """Insert or replace; used when rebuilding from docker on startup."""
        async with self._lock:
            self._entries[entry.id] = entry

    async def remove(self, server_id: str) -> ServerEntry | None:
        async with self._lock:
            return self._entries.pop(server_id, None)

    def find(self, server_id: str) -> ServerEntry | None:
        return self._entries.get(server_id)

    def get(self, server_id: str) -> ServerEntry:
        entry = self._entries.get(server_id)
        if entry is None:
            raise ServerNotFound(f"Server {server_id} not found")
        return entry

    async def snapshot(self) -> list[ServerEntry]:
        """Point-in-time copy of the entries; later inserts/removals do not affect it."""
        async with self._lock:
            return list(self._entries.values())
