"""Placement engine: reserve node capacity and an allocation for a server.

Reservation runs inside the caller's transaction. The node row is locked
(SELECT ... FOR UPDATE) and the capacity increment is a conditional UPDATE
that re-checks the ceiling, so two concurrent reservations can never
jointly overcommit a node. Nothing is written unless every check passes.

Placement is first-fit: the lowest free port wins. There is no best-fit
or defragmentation.
"""

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from .errors import Conflict, NoAvailableAllocation, NotFound, ResourceExhausted, ValidationFailed
from .models import Allocation, Node

logger = structlog.get_logger()


class PlacementEngine:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_node(self, node_id: uuid.UUID) -> Node:
        """Load the node with its row locked until the transaction ends."""
        query = (
            select(Node)
            .where(Node.id == node_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        node = (await self.session.execute(query)).scalar_one_or_none()
        if node is None:
            raise NotFound(f"Node {node_id} not found")
        return node

    async def reserve(
        self,
        node_id: uuid.UUID,
        server_id: uuid.UUID,
        memory: int,
        disk: int,
        cpu: int,
    ) -> Allocation:
        """Bind the lowest free allocation on the node and charge its capacity.

        Does not commit. On any error nothing has been written.
        """
        if memory <= 0 or disk <= 0 or cpu <= 0:
            raise ValidationFailed("Resource limits must be positive")

        node = await self.lock_node(node_id)
        if node.maintenance_mode:
            raise Conflict(f"Node {node.name} is in maintenance mode")

        if memory > node.available_memory:
            raise ResourceExhausted(
                f"Node {node.name} has {node.available_memory} MiB memory available, "
                f"{memory} requested"
            )
        if disk > node.available_disk:
            raise ResourceExhausted(
                f"Node {node.name} has {node.available_disk} MiB disk available, {disk} requested"
            )
        if cpu > node.available_cpu:
            raise ResourceExhausted(
                f"Node {node.name} has {node.available_cpu}% CPU available, {cpu} requested"
            )

        free = await self.session.execute(
            select(Allocation)
            .where(Allocation.node_id == node_id, Allocation.server_id.is_(None))
            .order_by(Allocation.port, Allocation.ip)
            .with_for_update()
        )
        allocation = None
        for candidate in free.scalars().all():
            bound = await self.session.execute(
                update(Allocation)
                .where(Allocation.id == candidate.id, Allocation.server_id.is_(None))
                .values(server_id=server_id, is_primary=True)
                .execution_options(synchronize_session=False)
            )
            if bound.rowcount == 1:
                allocation = candidate
                break
        if allocation is None:
            raise NoAvailableAllocation(f"Node {node.name} has no free allocation")

        charged = await self.session.execute(
            update(Node)
            .where(
                Node.id == node_id,
                (Node.memory_allocated + memory) * 100
                <= Node.memory_total * (100 + Node.memory_overalloc),
                (Node.disk_allocated + disk) * 100 <= Node.disk_total * (100 + Node.disk_overalloc),
                Node.cpu_allocated + cpu <= Node.cpu_total,
            )
            .values(
                memory_allocated=Node.memory_allocated + memory,
                disk_allocated=Node.disk_allocated + disk,
                cpu_allocated=Node.cpu_allocated + cpu,
            )
            .execution_options(synchronize_session=False)
        )
        if charged.rowcount != 1:
            # Lost a race for the capacity after the row lock; undo the bind
            await self._unbind(allocation.id)
            raise ResourceExhausted(f"Node {node.name} capacity changed during reservation")

        await self.session.refresh(allocation)
        await self.session.refresh(node)
        logger.info(
            "placement_reserved",
            node_id=str(node_id),
            server_id=str(server_id),
            allocation=f"{allocation.ip}:{allocation.port}",
            memory=memory,
            disk=disk,
            cpu=cpu,
        )
        return allocation

    async def release(
        self,
        allocation_id: uuid.UUID | None,
        node_id: uuid.UUID,
        memory: int,
        disk: int,
        cpu: int,
    ) -> None:
        """Unbind the allocation and give the capacity back to the node.

        Not idempotent: the caller must guarantee one call per server lifetime.
        Does not commit.
        """
        if allocation_id is not None:
            await self._unbind(allocation_id)
        await self.session.execute(
            update(Node)
            .where(Node.id == node_id)
            .values(
                memory_allocated=Node.memory_allocated - memory,
                disk_allocated=Node.disk_allocated - disk,
                cpu_allocated=Node.cpu_allocated - cpu,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "placement_released",
            node_id=str(node_id),
            allocation_id=str(allocation_id) if allocation_id else None,
            memory=memory,
            disk=disk,
            cpu=cpu,
        )

    async def _unbind(self, allocation_id: uuid.UUID) -> None:
        await self.session.execute(
            update(Allocation)
            .where(Allocation.id == allocation_id)
            .values(server_id=None, is_primary=False)
            .execution_options(synchronize_session=False)
        )
