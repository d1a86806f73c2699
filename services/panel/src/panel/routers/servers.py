"""Servers router: creation, power, console commands and deletion."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts import CommandRequest, ServerStats

from ..database import get_async_session
from ..dependencies import get_lifecycle
from ..lifecycle import LifecycleOrchestrator
from ..models import Server
from ..schemas import PowerRequest, ServerCreate, ServerRead, SuspendRequest

router = APIRouter(prefix="/servers", tags=["servers"])


@router.post("/", response_model=ServerRead, status_code=status.HTTP_201_CREATED)
async def create_server(
    server_in: ServerCreate, lifecycle: LifecycleOrchestrator = Depends(get_lifecycle)
) -> Server:
    """Place a server on the requested node and ask the node to create it."""
    return await lifecycle.create(server_in)


@router.get("/", response_model=list[ServerRead])
async def list_servers(
    node_id: uuid.UUID | None = None,
    owner_id: str | None = None,
    status: str | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> list[Server]:
    query = select(Server).order_by(Server.created_at)
    if node_id is not None:
        query = query.where(Server.node_id == node_id)
    if owner_id is not None:
        query = query.where(Server.owner_id == owner_id)
    if status is not None:
        query = query.where(Server.status == status)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{server_id}", response_model=ServerRead)
async def get_server(
    server_id: uuid.UUID, lifecycle: LifecycleOrchestrator = Depends(get_lifecycle)
) -> Server:
    return await lifecycle.get_server(server_id)


@router.post("/{server_id}/power", response_model=ServerRead)
async def power(
    server_id: uuid.UUID,
    request: PowerRequest,
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
) -> Server:
    """Send a power action (start, stop, restart, kill)."""
    return await lifecycle.power(server_id, request.action)


@router.post("/{server_id}/command", status_code=status.HTTP_204_NO_CONTENT)
async def send_command(
    server_id: uuid.UUID,
    request: CommandRequest,
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
) -> None:
    await lifecycle.send_command(server_id, request.command)


@router.get("/{server_id}/stats", response_model=ServerStats)
async def get_stats(
    server_id: uuid.UUID, lifecycle: LifecycleOrchestrator = Depends(get_lifecycle)
) -> ServerStats:
    return await lifecycle.get_stats(server_id)


@router.post("/{server_id}/suspend", response_model=ServerRead)
async def suspend(
    server_id: uuid.UUID,
    request: SuspendRequest,
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
) -> Server:
    return await lifecycle.suspend(server_id, request.reason)


@router.post("/{server_id}/unsuspend", response_model=ServerRead)
async def unsuspend(
    server_id: uuid.UUID, lifecycle: LifecycleOrchestrator = Depends(get_lifecycle)
) -> Server:
    return await lifecycle.unsuspend(server_id)


@router.post("/{server_id}/reinstall", response_model=ServerRead)
async def reinstall(
    server_id: uuid.UUID, lifecycle: LifecycleOrchestrator = Depends(get_lifecycle)
) -> Server:
    return await lifecycle.reinstall(server_id)


@router.delete("/{server_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(
    server_id: uuid.UUID, lifecycle: LifecycleOrchestrator = Depends(get_lifecycle)
) -> None:
    """Delete a server. Local cleanup proceeds even if the node is unreachable."""
    await lifecycle.delete(server_id)
