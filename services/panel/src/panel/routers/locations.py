"""Locations router."""

import uuid

from fastapi import APIRouter, Depends, status

from ..dependencies import get_inventory
from ..inventory import InventoryService
from ..models import Location
from ..schemas import LocationCreate, LocationRead

router = APIRouter(prefix="/locations", tags=["locations"])


@router.post("/", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
async def create_location(
    location_in: LocationCreate, inventory: InventoryService = Depends(get_inventory)
) -> Location:
    return await inventory.create_location(location_in)


@router.get("/", response_model=list[LocationRead])
async def list_locations(inventory: InventoryService = Depends(get_inventory)) -> list[Location]:
    return await inventory.list_locations()


@router.get("/{location_id}", response_model=LocationRead)
async def get_location(
    location_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> Location:
    return await inventory.get_location(location_id)


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_location(
    location_id: uuid.UUID, inventory: InventoryService = Depends(get_inventory)
) -> None:
    """Delete a location that no node references."""
    await inventory.delete_location(location_id)
