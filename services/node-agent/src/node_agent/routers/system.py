"""Node system information."""

from fastapi import APIRouter, Depends

from shared.contracts import SystemInfo

from ..dependencies import get_manager, require_token
from ..manager import ServerManager

router = APIRouter(prefix="/system", tags=["system"], dependencies=[Depends(require_token)])


@router.get("", response_model=SystemInfo)
async def system_info(manager: ServerManager = Depends(get_manager)) -> SystemInfo:
    return await manager.system_info()
