"""Callbacks from node agents, authenticated by the node's daemon token."""

import uuid

from fastapi import APIRouter, Depends, status

from shared.contracts import (
    BackupReport,
    InstallReport,
    NodeConfiguration,
    NodeRegistration,
    ServerSpec,
)

from ..dependencies import get_authenticated_node, get_inventory, get_lifecycle
from ..errors import NotFound
from ..inventory import InventoryService
from ..lifecycle import LifecycleOrchestrator
from ..models import Node

router = APIRouter(prefix="/remote", tags=["remote"])


def _require_same_node(node: Node, node_id: uuid.UUID) -> None:
    if node.id != node_id:
        raise NotFound(f"Node {node_id} not found")


@router.post("/nodes/{node_id}/register", status_code=status.HTTP_204_NO_CONTENT)
async def register(
    node_id: uuid.UUID,
    registration: NodeRegistration,
    node: Node = Depends(get_authenticated_node),
    inventory: InventoryService = Depends(get_inventory),
) -> None:
    """Mark the node reachable and record the port its agent listens on."""
    _require_same_node(node, node_id)
    await inventory.register_node(node, registration)


@router.get("/nodes/{node_id}/configuration", response_model=NodeConfiguration)
async def configuration(
    node_id: uuid.UUID,
    node: Node = Depends(get_authenticated_node),
    inventory: InventoryService = Depends(get_inventory),
) -> NodeConfiguration:
    _require_same_node(node, node_id)
    return inventory.configuration(node)


@router.get("/nodes/{node_id}/servers", response_model=list[ServerSpec])
async def node_servers(
    node_id: uuid.UUID,
    node: Node = Depends(get_authenticated_node),
    inventory: InventoryService = Depends(get_inventory),
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
) -> list[ServerSpec]:
    """Specs of every server the node should be running, used on agent boot."""
    _require_same_node(node, node_id)
    servers = await inventory.servers_on_node(node.id)
    return [await lifecycle.build_spec(server) for server in servers]


@router.post("/servers/{server_id}/install", status_code=status.HTTP_204_NO_CONTENT)
async def install_finished(
    server_id: uuid.UUID,
    report: InstallReport,
    node: Node = Depends(get_authenticated_node),
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
) -> None:
    server = await lifecycle.get_server(server_id)
    if server.node_id != node.id:
        raise NotFound(f"Server {server_id} not found")
    await lifecycle.complete_install(server, report.successful)


@router.post("/backups/{backup_id}", status_code=status.HTTP_204_NO_CONTENT)
async def backup_finished(
    backup_id: uuid.UUID,
    report: BackupReport,
    node: Node = Depends(get_authenticated_node),
    inventory: InventoryService = Depends(get_inventory),
) -> None:
    await inventory.apply_backup_report(node, backup_id, report)
