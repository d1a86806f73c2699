"""In-process per-server mutual exclusion for lifecycle operations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import uuid

from .errors import Conflict


class ServerLocks:
    """One lock per server. A second operation fails fast instead of queueing.

    Status updates are also compare-and-swap at the store layer, which is
    what protects servers across several panel processes.
    """

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    def is_locked(self, server_id: uuid.UUID) -> bool:
        lock = self._locks.get(server_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, server_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(server_id, asyncio.Lock())
        if lock.locked():
            raise Conflict(f"Another operation is already in progress for server {server_id}")
        try:
            async with lock:
                yield
        finally:
            if not lock.locked() and self._locks.get(server_id) is lock:
                del self._locks[server_id]
