"""Lifecycle orchestrator: the server state machine.

Every operation validates the current status, moves the server with a
compare-and-swap UPDATE, and only then calls the node. A failed remote
call moves the server to `error` and is surfaced to the caller; nothing
is retried here.

    installing -> stopped <-> starting -> running <-> stopping -> stopped
    running | stopped | starting -> restarting -> running
    any -> error (remote failure)
    stopped -> suspended -> stopped (unsuspend)
"""

from collections.abc import Iterable
from datetime import UTC, datetime
import uuid

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from shared.contracts import AllocationSpec, BackupRequest, PowerAction, ServerSpec, ServerStats

from . import audit
from .config import PanelSettings, get_settings
from .errors import Conflict, NotFound, RemoteFailure, ValidationFailed
from .locks import ServerLocks
from .models import Allocation, Backup, BackupStatus, Node, Server, ServerStatus, short_uuid
from .placement import PlacementEngine
from .schemas import ServerCreate
from .transport import NodeTransport

logger = structlog.get_logger()

S = ServerStatus

START_FROM = frozenset({S.STOPPED, S.ERROR})
STOP_FROM = frozenset({S.RUNNING, S.STARTING, S.RESTARTING})
RESTART_FROM = frozenset({S.RUNNING, S.STOPPED, S.STARTING, S.ERROR})
# A container may be alive in any of these
RUNNING_STATES = frozenset({S.RUNNING, S.STARTING, S.STOPPING, S.RESTARTING})
ALL_STATES = frozenset(S)
NOT_DELETING = ALL_STATES - {S.DELETING}


def _now() -> datetime:
    return datetime.now(UTC)


def _values(statuses: Iterable[ServerStatus]) -> list[str]:
    return [s.value for s in statuses]


class LifecycleOrchestrator:
    """Turns user intents into status transitions plus node commands."""

    def __init__(
        self,
        session: AsyncSession,
        transport: NodeTransport,
        locks: ServerLocks,
        settings: PanelSettings | None = None,
    ):
        self.session = session
        self.transport = transport
        self.locks = locks
        self.settings = settings or get_settings()

    # --- helpers ---

    async def get_server(self, server_id: uuid.UUID) -> Server:
        server = await self.session.get(Server, server_id, populate_existing=True)
        if server is None:
            raise NotFound(f"Server {server_id} not found")
        return server

    async def _get_node(self, node_id: uuid.UUID) -> Node:
        node = await self.session.get(Node, node_id)
        if node is None:
            raise NotFound(f"Node {node_id} not found")
        return node

    @staticmethod
    def _require(server: Server, allowed: frozenset[ServerStatus], operation: str) -> None:
        if ServerStatus(server.status) not in allowed:
            raise Conflict(f"Cannot {operation} server {server.uuid_short}: it is {server.status}")

    async def _transition(
        self,
        server: Server,
        allowed: frozenset[ServerStatus],
        new: ServerStatus,
        operation: str,
        **values,
    ) -> None:
        """Compare-and-swap the status, commit, and refresh `server`."""
        result = await self.session.execute(
            update(Server)
            .where(Server.id == server.id, Server.status.in_(_values(allowed)))
            .values(status=new.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            await self.session.refresh(server)
            raise Conflict(f"Cannot {operation} server {server.uuid_short}: it is {server.status}")
        await self.session.commit()
        await self.session.refresh(server)
        logger.info(
            "server_status_changed",
            server_id=str(server.id),
            status=new.value,
            operation=operation,
        )

    async def _set(self, server: Server, **values) -> None:
        """Write non-status fields without touching the status."""
        await self.session.execute(
            update(Server)
            .where(Server.id == server.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(server)

    async def _mark_error(self, server: Server, operation: str, error: Exception) -> None:
        # Rollback expires `server`; its attributes must not be touched until the refresh
        server_id = server.id
        logger.error(
            "server_operation_failed",
            server_id=str(server_id),
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        await self.session.rollback()
        await self.session.execute(
            update(Server)
            .where(
                Server.id == server_id,
                Server.status.not_in(_values({S.DELETING, S.SUSPENDED})),
            )
            .values(status=S.ERROR.value)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(server)

    async def build_spec(self, server: Server) -> ServerSpec:
        result = await self.session.execute(
            select(Allocation)
            .where(Allocation.server_id == server.id)
            .order_by(Allocation.is_primary.desc(), Allocation.port)
        )
        allocations = [
            AllocationSpec(ip=a.ip, port=a.port, is_primary=a.is_primary)
            for a in result.scalars().all()
        ]
        return ServerSpec(
            id=str(server.id),
            uuid_short=server.uuid_short,
            docker_image=server.docker_image,
            startup_cmd=server.startup_cmd,
            environment={k: str(v) for k, v in (server.environment or {}).items()},
            memory_limit=server.memory_limit,
            disk_limit=server.disk_limit,
            cpu_limit=server.cpu_limit,
            swap_limit=server.swap_limit,
            io_weight=server.io_weight,
            allocations=allocations,
        )

    def _validate_limits(self, request: ServerCreate) -> None:
        bounds = {
            "memory_limit": self.settings.max_memory_limit,
            "disk_limit": self.settings.max_disk_limit,
            "cpu_limit": self.settings.max_cpu_limit,
        }
        for field, bound in bounds.items():
            value = getattr(request, field)
            if value > bound:
                raise ValidationFailed(f"{field} {value} exceeds the maximum of {bound}")

    # --- operations ---

    async def create(self, request: ServerCreate) -> Server:
        """Reserve capacity, persist the server as installing, then materialize it."""
        self._validate_limits(request)
        node = await self._get_node(request.node_id)

        server_id = uuid.uuid4()
        server = Server(
            id=server_id,
            uuid_short=short_uuid(server_id),
            name=request.name,
            description=request.description,
            owner_id=request.owner_id,
            node_id=node.id,
            memory_limit=request.memory_limit,
            disk_limit=request.disk_limit,
            cpu_limit=request.cpu_limit,
            swap_limit=request.swap_limit,
            io_weight=request.io_weight,
            docker_image=request.docker_image,
            startup_cmd=request.startup_cmd,
            environment=request.environment,
            status=S.INSTALLING.value,
            backup_limit=(
                request.backup_limit
                if request.backup_limit is not None
                else self.settings.default_backup_limit
            ),
        )
        # Row, allocation bind and node charge commit together or not at all
        try:
            self.session.add(server)
            await self.session.flush()
            allocation = await PlacementEngine(self.session).reserve(
                node.id, server.id, request.memory_limit, request.disk_limit, request.cpu_limit
            )
            server.allocation_id = allocation.id
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(server)
        audit.record("server:create", "server", server.id, node_id=str(node.id))

        spec = await self.build_spec(server)
        try:
            state = await self.transport.create_server(node, spec)
        except RemoteFailure as e:
            await self._mark_error(server, "create", e)
            raise
        # The install callback may already have moved the status; leave it alone
        await self._set(server, container_id=state.container_id)
        logger.info("server_created", server_id=str(server.id), node_id=str(node.id))
        return server

    async def start(self, server_id: uuid.UUID) -> Server:
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            if server.suspended:
                raise Conflict(f"Server {server.uuid_short} is suspended")
            self._require(server, START_FROM, "start")
            node = await self._get_node(server.node_id)

            await self._transition(server, START_FROM, S.STARTING, "start")
            try:
                await self.transport.power(node, str(server.id), PowerAction.START)
            except RemoteFailure as e:
                await self._mark_error(server, "start", e)
                raise
            await self._set(server, last_started_at=_now())
            audit.record("server:power.start", "server", server.id)
            return server

    async def stop(self, server_id: uuid.UUID) -> Server:
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            self._require(server, STOP_FROM, "stop")
            node = await self._get_node(server.node_id)

            await self._transition(server, STOP_FROM, S.STOPPING, "stop")
            try:
                await self.transport.power(node, str(server.id), PowerAction.STOP)
            except RemoteFailure as e:
                await self._mark_error(server, "stop", e)
                raise
            audit.record("server:power.stop", "server", server.id)
            return server

    async def restart(self, server_id: uuid.UUID) -> Server:
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            if server.suspended:
                raise Conflict(f"Server {server.uuid_short} is suspended")
            self._require(server, RESTART_FROM, "restart")
            node = await self._get_node(server.node_id)

            await self._transition(server, RESTART_FROM, S.RESTARTING, "restart")
            try:
                await self.transport.power(node, str(server.id), PowerAction.RESTART)
            except RemoteFailure as e:
                await self._mark_error(server, "restart", e)
                raise
            await self._set(server, last_started_at=_now())
            audit.record("server:power.restart", "server", server.id)
            return server

    async def kill(self, server_id: uuid.UUID) -> Server:
        """Force-stop from any state. A suspended server stays suspended."""
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            self._require(server, NOT_DELETING, "kill")
            node = await self._get_node(server.node_id)

            try:
                await self.transport.power(node, str(server.id), PowerAction.KILL)
            except RemoteFailure as e:
                await self._mark_error(server, "kill", e)
                raise
            if ServerStatus(server.status) != S.SUSPENDED:
                await self._transition(
                    server, NOT_DELETING - {S.SUSPENDED}, S.STOPPED, "kill"
                )
            audit.record("server:power.kill", "server", server.id)
            return server

    async def power(self, server_id: uuid.UUID, action: PowerAction) -> Server:
        handlers = {
            PowerAction.START: self.start,
            PowerAction.STOP: self.stop,
            PowerAction.RESTART: self.restart,
            PowerAction.KILL: self.kill,
        }
        return await handlers[action](server_id)

    async def send_command(self, server_id: uuid.UUID, command: str) -> None:
        server = await self.get_server(server_id)
        self._require(server, frozenset({S.RUNNING}), "send a command to")
        node = await self._get_node(server.node_id)
        await self.transport.send_command(node, str(server.id), command)
        logger.info("server_command_sent", server_id=str(server.id))

    async def suspend(self, server_id: uuid.UUID, reason: str) -> Server:
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            self._require(server, NOT_DELETING - {S.SUSPENDED}, "suspend")

            if ServerStatus(server.status) in RUNNING_STATES:
                node = await self._get_node(server.node_id)
                try:
                    await self.transport.power(node, str(server.id), PowerAction.KILL)
                except RemoteFailure as e:
                    # Suspension still applies; reconciliation reports the stray container
                    logger.warning(
                        "server_suspend_kill_failed", server_id=str(server.id), error=str(e)
                    )

            await self._transition(
                server,
                NOT_DELETING - {S.SUSPENDED},
                S.SUSPENDED,
                "suspend",
                suspended=True,
                suspension_reason=reason,
            )
            audit.record("server:suspend", "server", server.id, reason=reason)
            return server

    async def unsuspend(self, server_id: uuid.UUID) -> Server:
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            await self._transition(
                server,
                frozenset({S.SUSPENDED}),
                S.STOPPED,
                "unsuspend",
                suspended=False,
                suspension_reason=None,
            )
            audit.record("server:unsuspend", "server", server.id)
            return server

    async def reinstall(self, server_id: uuid.UUID) -> Server:
        allowed = NOT_DELETING - {S.SUSPENDED, S.INSTALLING}
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            self._require(server, allowed, "reinstall")
            node = await self._get_node(server.node_id)

            if ServerStatus(server.status) in RUNNING_STATES:
                try:
                    await self.transport.power(node, str(server.id), PowerAction.KILL)
                except RemoteFailure as e:
                    await self._mark_error(server, "reinstall", e)
                    raise

            await self._transition(
                server, allowed, S.INSTALLING, "reinstall", installed_at=None
            )
            spec = await self.build_spec(server)
            try:
                state = await self.transport.reinstall_server(node, spec)
            except RemoteFailure as e:
                await self._mark_error(server, "reinstall", e)
                raise
            await self._set(server, container_id=state.container_id)
            audit.record("server:reinstall", "server", server.id)
            return server

    async def create_backup(self, server_id: uuid.UUID, name: str) -> Backup:
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            self._require(server, NOT_DELETING, "back up")

            count = await self.session.scalar(
                select(func.count())
                .select_from(Backup)
                .where(Backup.server_id == server.id, Backup.status != BackupStatus.DELETED.value)
            )
            if count >= server.backup_limit:
                raise Conflict(
                    f"Backup limit reached for server {server.uuid_short} "
                    f"({count}/{server.backup_limit})"
                )

            backup = Backup(server_id=server.id, name=name, status=BackupStatus.PENDING.value)
            self.session.add(backup)
            await self.session.commit()
            await self.session.refresh(backup)

            node = await self._get_node(server.node_id)
            try:
                await self.transport.create_backup(
                    node, str(server.id), BackupRequest(backup_id=str(backup.id), name=name)
                )
            except RemoteFailure as e:
                backup.status = BackupStatus.FAILED.value
                backup.error_message = e.message
                await self.session.commit()
                logger.error("backup_request_failed", backup_id=str(backup.id), error=str(e))
                raise

            # The completion callback may race us here; only pending moves forward
            await self.session.execute(
                update(Backup)
                .where(Backup.id == backup.id, Backup.status == BackupStatus.PENDING.value)
                .values(status=BackupStatus.IN_PROGRESS.value)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            await self.session.refresh(backup)
            audit.record("server:backup.create", "backup", backup.id, server_id=str(server.id))
            return backup

    async def get_stats(self, server_id: uuid.UUID) -> ServerStats:
        server = await self.get_server(server_id)
        node = await self._get_node(server.node_id)
        return await self.transport.get_stats(node, str(server.id))

    async def delete(self, server_id: uuid.UUID) -> None:
        """Delete saga: mark deleting, best-effort remote teardown, then local cleanup.

        Local cleanup always runs, whatever the node said.
        """
        async with self.locks.hold(server_id):
            server = await self.get_server(server_id)
            if ServerStatus(server.status) != S.DELETING:
                await self._transition(server, NOT_DELETING, S.DELETING, "delete")
            await self._finish_delete(server)

    async def resume_pending_deletions(self) -> int:
        """Finish deletes interrupted between marking and local cleanup."""
        result = await self.session.execute(
            select(Server.id).where(Server.status == S.DELETING.value)
        )
        resumed = 0
        for server_id in result.scalars().all():
            if self.locks.is_locked(server_id):
                continue
            try:
                await self.delete(server_id)
                resumed += 1
            except (Conflict, NotFound):
                continue
        if resumed:
            logger.info("server_deletions_resumed", count=resumed)
        return resumed

    async def _finish_delete(self, server: Server) -> None:
        node = await self.session.get(Node, server.node_id)
        server_ref = str(server.id)

        if node is not None:
            for step, call in (
                ("kill", lambda: self.transport.power(node, server_ref, PowerAction.KILL)),
                ("delete", lambda: self.transport.delete_server(node, server_ref)),
            ):
                try:
                    await call()
                except RemoteFailure as e:
                    logger.warning(
                        "server_delete_remote_failed",
                        server_id=server_ref,
                        step=step,
                        error=str(e),
                    )

        # One transaction; the DELETING row lock makes it run exactly once
        locked = await self.session.execute(
            select(Server)
            .where(Server.id == server.id, Server.status == S.DELETING.value)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        server = locked.scalar_one_or_none()
        if server is None:
            await self.session.rollback()
            return
        try:
            await PlacementEngine(self.session).release(
                server.allocation_id,
                server.node_id,
                server.memory_limit,
                server.disk_limit,
                server.cpu_limit,
            )
            await self.session.execute(
                update(Allocation)
                .where(Allocation.server_id == server.id)
                .values(server_id=None, is_primary=False)
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(delete(Backup).where(Backup.server_id == server.id))
            await self.session.delete(server)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info("server_deleted", server_id=server_ref)
        audit.record("server:delete", "server", server_ref)

    # --- node callbacks ---

    async def complete_install(self, server: Server, successful: bool) -> Server:
        """Leave `installing` once the node reports the install outcome."""
        new = S.STOPPED if successful else S.ERROR
        values = {"installed_at": _now()} if successful else {}
        await self._transition(
            server, frozenset({S.INSTALLING}), new, "complete install of", **values
        )
        return server
