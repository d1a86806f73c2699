"""Nodes router: node CRUD, allocations and agent bootstrap configuration."""

import uuid

from fastapi import APIRouter, Depends, status

from shared.contracts import NodeConfiguration, SystemInfo

from ..dependencies import get_inventory, get_transport
from ..inventory import InventoryService
from ..models import Allocation, Node
from ..schemas import (
    AllocationBatchCreate,
    AllocationRead,
    NodeCreate,
    NodeRead,
    NodeTokenRead,
    NodeUpdate,
)
from ..transport import NodeTransport

router = APIRouter(prefix="/nodes", tags=["nodes"])


@router.post("/", response_model=NodeRead, status_code=status.HTTP_201_CREATED)
async def create_node(
    node_in: NodeCreate, inventory: InventoryService = Depends(get_inventory)
) -> Node:
    """Create a node with a freshly generated daemon token."""
    return await inventory.create_node(node_in)


@router.get("/", response_model=list[NodeRead])
async def list_nodes(
    location_id: uuid.UUID | None = None, inventory: InventoryService = Depends(get_inventory)
) -> list[Node]:
    return await inventory.list_nodes(location_id)


@router.get("/{node_id}", response_model=NodeRead)
async def get_node(
    node_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> Node:
    return await inventory.get_node(node_id)


@router.patch("/{node_id}", response_model=NodeRead)
async def update_node(
    node_id: uuid.UUID, updates: NodeUpdate, inventory: InventoryService = Depends(get_inventory)
) -> Node:
    return await inventory.update_node(node_id, updates)


@router.delete("/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(
    node_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> None:
    """Delete a node that owns no servers, together with its allocations."""
    await inventory.delete_node(node_id)


@router.post("/{node_id}/token", response_model=NodeTokenRead)
async def regenerate_token(
    node_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> NodeTokenRead:
    node = await inventory.regenerate_token(node_id)
    return NodeTokenRead(token_id=node.daemon_token_id, token=node.daemon_token)


@router.get("/{node_id}/configuration", response_model=NodeConfiguration)
async def get_configuration(
    node_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> NodeConfiguration:
    node = await inventory.get_node(node_id)
    return inventory.configuration(node)


@router.get("/{node_id}/system", response_model=SystemInfo)
async def get_system_info(
    node_id: uuid.UUID,
    inventory: InventoryService = Depends(get_inventory),
    transport: NodeTransport = Depends(get_transport),
) -> SystemInfo:
    """Live system information from the node's agent."""
    node = await inventory.get_node(node_id)
    info = await transport.system_info(node)
    node.system_info = info.model_dump()
    await inventory.session.commit()
    return info


@router.post(
    "/{node_id}/allocations",
    response_model=list[AllocationRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_allocations(
    node_id: uuid.UUID,
    batch: AllocationBatchCreate,
    inventory: InventoryService = Depends(get_inventory),
) -> list[Allocation]:
    """Create allocations for a port range, skipping ports that already exist."""
    return await inventory.create_allocations(node_id, batch)


@router.get("/{node_id}/allocations", response_model=list[AllocationRead])
async def list_allocations(
    node_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> list[Allocation]:
    return await inventory.list_allocations(node_id)


@router.delete("/{node_id}/allocations/{allocation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_allocation(
    node_id: uuid.UUID,
    allocation_id: uuid.UUID,
    inventory: InventoryService = Depends(get_inventory),
) -> None:
    await inventory.delete_allocation(node_id, allocation_id)
