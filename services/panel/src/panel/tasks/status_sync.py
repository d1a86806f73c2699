"""Status reconciler: overwrite cached server status with what nodes observe.

There is no cross-process transaction between the panel and its agents;
this loop is what makes them converge. It also finishes deletes that
were interrupted after the server was marked `deleting`.
"""

from datetime import UTC, datetime
import time

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from ..errors import RemoteFailure
from ..lifecycle import LifecycleOrchestrator
from ..locks import ServerLocks
from ..models import Node, Server, ServerStatus
from ..transport import NodeTransport

logger = structlog.get_logger()

S = ServerStatus

CONTAINER_STATES = {
    "running": S.RUNNING,
    "restarting": S.RESTARTING,
    "created": S.STOPPED,
    "exited": S.STOPPED,
    "dead": S.STOPPED,
}

# installing, suspended and deleting only change through explicit signals
RECONCILABLE = frozenset({S.STARTING, S.RUNNING, S.STOPPING, S.RESTARTING, S.ERROR})


def status_from_container_state(state: str) -> ServerStatus | None:
    """Map a docker container state to a server status, None if it says nothing."""
    return CONTAINER_STATES.get(state)


async def sync_node(
    session: AsyncSession, transport: NodeTransport, locks: ServerLocks, node: Node
) -> int:
    """Reconcile one node. Returns the number of servers whose status changed."""
    now = datetime.now(UTC)
    try:
        states = await transport.list_servers(node)
    except RemoteFailure as e:
        if node.is_online:
            logger.warning("node_unreachable", node_id=str(node.id), error=str(e))
        node.is_online = False
        node.last_checked_at = now
        await session.commit()
        return 0

    node.is_online = True
    node.last_checked_at = now
    await session.commit()

    observed = {state.id: state for state in states}
    result = await session.execute(
        select(Server).where(
            Server.node_id == node.id,
            Server.status.in_([s.value for s in RECONCILABLE | {S.SUSPENDED}]),
        )
    )

    updated = 0
    for server in result.scalars().all():
        state = observed.get(str(server.id))
        if state is None:
            continue
        target = status_from_container_state(state.status)
        current = ServerStatus(server.status)

        if current == S.SUSPENDED:
            if target == S.RUNNING:
                logger.warning("suspended_server_running", server_id=str(server.id))
            continue
        if target is None or target == current or locks.is_locked(server.id):
            continue

        changed = await session.execute(
            update(Server)
            .where(Server.id == server.id, Server.status == current.value)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        if changed.rowcount == 1:
            updated += 1
            logger.info(
                "server_status_reconciled",
                server_id=str(server.id),
                previous=current.value,
                status=target.value,
            )
    return updated


async def sync_all_nodes(
    session_maker: async_sessionmaker[AsyncSession],
    transport: NodeTransport,
    locks: ServerLocks,
) -> None:
    """One reconciliation pass over every node that is not in maintenance."""
    start_time = time.time()
    nodes_checked = 0
    servers_updated = 0
    deletions_resumed = 0

    async with session_maker() as session:
        result = await session.execute(select(Node.id).where(Node.maintenance_mode.is_(False)))
        for node_id in result.scalars().all():
            try:
                # Re-read per node; a rollback after a failed node expires everything
                node = await session.get(Node, node_id)
                if node is None:
                    continue
                servers_updated += await sync_node(session, transport, locks, node)
                nodes_checked += 1
            except Exception as e:
                await session.rollback()
                logger.error(
                    "node_sync_failed",
                    node_id=str(node_id),
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

        lifecycle = LifecycleOrchestrator(session, transport, locks)
        deletions_resumed = await lifecycle.resume_pending_deletions()

    logger.info(
        "status_sync_complete",
        nodes_checked=nodes_checked,
        servers_updated=servers_updated,
        deletions_resumed=deletions_resumed,
        duration_sec=round(time.time() - start_time, 2),
    )
