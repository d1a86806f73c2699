"""Console WebSocket for viewers connected to the panel."""

import uuid

from fastapi import APIRouter, Depends, WebSocket, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.redis import ConsolePubSub, relay_console

from ..database import get_async_session
from ..dependencies import get_console
from ..models import Server

router = APIRouter(tags=["console"])


@router.websocket("/servers/{server_id}/console")
async def console(
    websocket: WebSocket,
    server_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
    console: ConsolePubSub = Depends(get_console),
) -> None:
    exists = await db.get(Server, server_id) is not None
    # The relay lasts as long as the viewer; it must not pin a pooled connection
    await db.close()
    if not exists:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Server not found")
        return
    await websocket.accept()
    await relay_console(websocket, console, str(server_id))
