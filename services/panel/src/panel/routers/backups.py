"""Backups router."""

import uuid

from fastapi import APIRouter, Depends, status

from ..dependencies import get_inventory, get_lifecycle
from ..inventory import InventoryService
from ..lifecycle import LifecycleOrchestrator
from ..models import Backup
from ..schemas import BackupCreate, BackupLockUpdate, BackupRead

router = APIRouter(prefix="/servers/{server_id}/backups", tags=["backups"])


@router.post("/", response_model=BackupRead, status_code=status.HTTP_202_ACCEPTED)
async def create_backup(
    server_id: uuid.UUID,
    backup_in: BackupCreate,
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
) -> Backup:
    """Start a backup; the node reports completion asynchronously."""
    return await lifecycle.create_backup(server_id, backup_in.name)


@router.get("/", response_model=list[BackupRead])
async def list_backups(
    server_id: uuid.UUID,
    lifecycle: LifecycleOrchestrator = Depends(get_lifecycle),
    inventory: InventoryService = Depends(get_inventory),
) -> list[Backup]:
    await lifecycle.get_server(server_id)
    return await inventory.list_backups(server_id)


@router.patch("/{backup_id}", response_model=BackupRead)
async def set_backup_lock(
    server_id: uuid.UUID,
    backup_id: uuid.UUID,
    update: BackupLockUpdate,
    inventory: InventoryService = Depends(get_inventory),
) -> Backup:
    return await inventory.set_backup_lock(server_id, backup_id, update.is_locked)


@router.delete("/{backup_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_backup(
    server_id: uuid.UUID,
    backup_id: uuid.UUID,
    inventory: InventoryService = Depends(get_inventory),
) -> None:
    await inventory.delete_backup(server_id, backup_id)
