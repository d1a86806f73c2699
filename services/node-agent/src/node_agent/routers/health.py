"""Health check router."""

from fastapi import APIRouter, Depends

from ..dependencies import get_manager
from ..manager import ServerManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(manager: ServerManager = Depends(get_manager)) -> dict:
    """Health check endpoint; unauthenticated."""
    return {"status": "ok", "servers": len(manager.registry)}
