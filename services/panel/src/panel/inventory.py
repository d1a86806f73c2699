"""Inventory operations: locations, nodes, allocations and backup records."""

from datetime import UTC, datetime
import hmac
import uuid

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from shared.contracts import (
    ApiConfiguration,
    BackupReport,
    NodeConfiguration,
    NodeRegistration,
    SftpConfiguration,
    SslConfiguration,
    SystemConfiguration,
)

from . import audit
from .config import PanelSettings, get_settings
from .errors import Conflict, NotFound
from .models import (
    Allocation,
    Backup,
    BackupStatus,
    Location,
    Node,
    Server,
    ServerStatus,
    generate_daemon_token,
    overallocated_ceiling,
)
from .models.node import TOKEN_ID_LENGTH
from .placement import PlacementEngine
from .schemas import AllocationBatchCreate, LocationCreate, NodeCreate, NodeUpdate

logger = structlog.get_logger()


class InventoryService:
    def __init__(self, session: AsyncSession, settings: PanelSettings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    # --- locations ---

    async def create_location(self, data: LocationCreate) -> Location:
        existing = await self.session.scalar(
            select(Location).where(Location.short_code == data.short_code)
        )
        if existing:
            raise Conflict(f"Location with short code {data.short_code} already exists")
        location = Location(**data.model_dump())
        self.session.add(location)
        await self.session.commit()
        await self.session.refresh(location)
        audit.record("location:create", "location", location.id)
        return location

    async def list_locations(self) -> list[Location]:
        result = await self.session.execute(select(Location).order_by(Location.short_code))
        return list(result.scalars().all())

    async def get_location(self, location_id: uuid.UUID) -> Location:
        location = await self.session.get(Location, location_id)
        if location is None:
            raise NotFound(f"Location {location_id} not found")
        return location

    async def delete_location(self, location_id: uuid.UUID) -> None:
        location = await self.get_location(location_id)
        nodes = await self.session.scalar(
            select(func.count()).select_from(Node).where(Node.location_id == location.id)
        )
        if nodes:
            raise Conflict(f"Location {location.short_code} still has {nodes} node(s)")
        await self.session.delete(location)
        await self.session.commit()
        audit.record("location:delete", "location", location_id)

    # --- nodes ---

    async def create_node(self, data: NodeCreate) -> Node:
        await self.get_location(data.location_id)
        if await self.session.scalar(select(Node).where(Node.fqdn == data.fqdn)):
            raise Conflict(f"Node with FQDN {data.fqdn} already exists")

        token_id, token = generate_daemon_token()
        values = data.model_dump()
        values["daemon_base"] = values["daemon_base"] or self.settings.daemon_data_dir
        node = Node(**values, daemon_token_id=token_id, daemon_token=token)
        self.session.add(node)
        await self.session.commit()
        await self.session.refresh(node)
        logger.info("node_created", node_id=str(node.id), fqdn=node.fqdn)
        audit.record("node:create", "node", node.id)
        return node

    async def list_nodes(self, location_id: uuid.UUID | None = None) -> list[Node]:
        query = select(Node).order_by(Node.name)
        if location_id:
            query = query.where(Node.location_id == location_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_node(self, node_id: uuid.UUID) -> Node:
        node = await self.session.get(Node, node_id)
        if node is None:
            raise NotFound(f"Node {node_id} not found")
        return node

    async def update_node(self, node_id: uuid.UUID, data: NodeUpdate) -> Node:
        # Locked and re-read so a concurrent reservation cannot slip past the checks
        node = await PlacementEngine(self.session).lock_node(node_id)
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(node, field, value)

        # Shrinking capacity below what is already handed out is refused
        if node.memory_allocated > overallocated_ceiling(node.memory_total, node.memory_overalloc):
            await self.session.rollback()
            raise Conflict("Memory capacity would drop below the allocated amount")
        if node.disk_allocated > overallocated_ceiling(node.disk_total, node.disk_overalloc):
            await self.session.rollback()
            raise Conflict("Disk capacity would drop below the allocated amount")
        if node.cpu_allocated > node.cpu_total:
            await self.session.rollback()
            raise Conflict("CPU capacity would drop below the allocated amount")

        await self.session.commit()
        await self.session.refresh(node)
        audit.record("node:update", "node", node.id, fields=sorted(changes))
        return node

    async def delete_node(self, node_id: uuid.UUID) -> None:
        node = await self.get_node(node_id)
        servers = await self.session.scalar(
            select(func.count()).select_from(Server).where(Server.node_id == node.id)
        )
        if servers:
            raise Conflict(f"Node {node.name} still has {servers} server(s)")
        await self.session.execute(delete(Allocation).where(Allocation.node_id == node.id))
        await self.session.delete(node)
        await self.session.commit()
        logger.info("node_deleted", node_id=str(node_id))
        audit.record("node:delete", "node", node_id)

    async def regenerate_token(self, node_id: uuid.UUID) -> Node:
        node = await self.get_node(node_id)
        node.regenerate_token()
        await self.session.commit()
        await self.session.refresh(node)
        logger.info("node_token_regenerated", node_id=str(node.id))
        audit.record("node:token.regenerate", "node", node.id)
        return node

    def configuration(self, node: Node) -> NodeConfiguration:
        """Bootstrap document for the node's agent."""
        return NodeConfiguration(
            uuid=str(node.id),
            token_id=node.daemon_token_id,
            token=node.daemon_token,
            api=ApiConfiguration(
                host=node.fqdn,
                port=node.daemon_port,
                ssl=SslConfiguration(
                    enabled=node.scheme == "https",
                    cert=f"/etc/letsencrypt/live/{node.fqdn}/fullchain.pem",
                    key=f"/etc/letsencrypt/live/{node.fqdn}/privkey.pem",
                ),
            ),
            system=SystemConfiguration(
                data=node.daemon_base,
                sftp=SftpConfiguration(bind_port=node.daemon_sftp_port),
            ),
            remote=self.settings.panel_url,
        )

    async def authenticate_node(self, credential: str) -> Node | None:
        """Resolve `<token_id>.<token>` to its node, comparing in constant time."""
        token_id, _, token = credential.partition(".")
        if len(token_id) != TOKEN_ID_LENGTH or not token:
            return None
        node = await self.session.scalar(select(Node).where(Node.daemon_token_id == token_id))
        if node is None or not hmac.compare_digest(node.daemon_token, token):
            return None
        return node

    async def register_node(self, node: Node, registration: NodeRegistration) -> Node:
        if registration.node_id != str(node.id) or not hmac.compare_digest(
            registration.token, node.daemon_token
        ):
            raise Conflict("Registration does not match the authenticated node")
        node.is_online = True
        node.last_checked_at = datetime.now(UTC)
        node.daemon_port = registration.listen_port
        await self.session.commit()
        await self.session.refresh(node)
        logger.info("node_registered", node_id=str(node.id), listen_port=registration.listen_port)
        return node

    async def servers_on_node(self, node_id: uuid.UUID) -> list[Server]:
        result = await self.session.execute(
            select(Server)
            .where(Server.node_id == node_id, Server.status != ServerStatus.DELETING.value)
            .order_by(Server.created_at)
        )
        return list(result.scalars().all())

    # --- allocations ---

    async def create_allocations(
        self, node_id: uuid.UUID, data: AllocationBatchCreate
    ) -> list[Allocation]:
        node = await self.get_node(node_id)
        existing = await self.session.execute(
            select(Allocation.port).where(
                Allocation.node_id == node.id,
                Allocation.ip == data.ip,
                Allocation.port.between(data.port_start, data.port_end),
            )
        )
        taken = set(existing.scalars().all())
        created = [
            Allocation(node_id=node.id, ip=data.ip, port=port, alias=data.alias)
            for port in range(data.port_start, data.port_end + 1)
            if port not in taken
        ]
        if not created:
            raise Conflict(
                f"Every port in {data.port_start}-{data.port_end} already exists on {data.ip}"
            )
        self.session.add_all(created)
        await self.session.commit()
        for allocation in created:
            await self.session.refresh(allocation)
        logger.info(
            "allocations_created",
            node_id=str(node.id),
            ip=data.ip,
            created=len(created),
            skipped=len(taken),
        )
        return created

    async def list_allocations(self, node_id: uuid.UUID) -> list[Allocation]:
        await self.get_node(node_id)
        result = await self.session.execute(
            select(Allocation)
            .where(Allocation.node_id == node_id)
            .order_by(Allocation.ip, Allocation.port)
        )
        return list(result.scalars().all())

    async def delete_allocation(self, node_id: uuid.UUID, allocation_id: uuid.UUID) -> None:
        allocation = await self.session.get(Allocation, allocation_id)
        if allocation is None or allocation.node_id != node_id:
            raise NotFound(f"Allocation {allocation_id} not found on node {node_id}")
        # Conditional so a concurrent reservation cannot lose its allocation
        result = await self.session.execute(
            delete(Allocation)
            .where(Allocation.id == allocation_id, Allocation.server_id.is_(None))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            endpoint = f"{allocation.ip}:{allocation.port}"
            await self.session.rollback()
            raise Conflict(f"Allocation {endpoint} is assigned to a server")
        await self.session.commit()
        self.session.expunge(allocation)

    # --- backups ---

    async def list_backups(self, server_id: uuid.UUID) -> list[Backup]:
        result = await self.session.execute(
            select(Backup)
            .where(Backup.server_id == server_id, Backup.status != BackupStatus.DELETED.value)
            .order_by(Backup.created_at)
        )
        return list(result.scalars().all())

    async def get_backup(self, server_id: uuid.UUID, backup_id: uuid.UUID) -> Backup:
        backup = await self.session.get(Backup, backup_id)
        if backup is None or backup.server_id != server_id:
            raise NotFound(f"Backup {backup_id} not found")
        return backup

    async def set_backup_lock(
        self, server_id: uuid.UUID, backup_id: uuid.UUID, is_locked: bool
    ) -> Backup:
        backup = await self.get_backup(server_id, backup_id)
        backup.is_locked = is_locked
        await self.session.commit()
        await self.session.refresh(backup)
        return backup

    async def delete_backup(self, server_id: uuid.UUID, backup_id: uuid.UUID) -> None:
        backup = await self.get_backup(server_id, backup_id)
        if backup.is_locked:
            raise Conflict(f"Backup {backup.name} is locked")
        backup.status = BackupStatus.DELETED.value
        await self.session.commit()
        audit.record("server:backup.delete", "backup", backup.id)

    async def apply_backup_report(
        self, node: Node, backup_id: uuid.UUID, report: BackupReport
    ) -> Backup:
        backup = await self.session.get(Backup, backup_id)
        if backup is None:
            raise NotFound(f"Backup {backup_id} not found")
        server = await self.session.get(Server, backup.server_id)
        if server is None or server.node_id != node.id:
            raise NotFound(f"Backup {backup_id} not found")

        if report.successful:
            values = {
                "status": BackupStatus.COMPLETED.value,
                "checksum": report.checksum,
                "size": report.size,
                "completed_at": datetime.now(UTC),
            }
        else:
            values = {"status": BackupStatus.FAILED.value, "error_message": report.error}

        result = await self.session.execute(
            update(Backup)
            .where(
                Backup.id == backup_id,
                Backup.status.in_([BackupStatus.PENDING.value, BackupStatus.IN_PROGRESS.value]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = backup.status
            await self.session.rollback()
            raise Conflict(f"Backup {backup_id} is already {current}")
        await self.session.commit()
        await self.session.refresh(backup)
        logger.info("backup_reported", backup_id=str(backup_id), status=backup.status)
        return backup
