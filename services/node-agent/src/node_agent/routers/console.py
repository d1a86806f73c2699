"""Console WebSocket served directly by the agent."""

from fastapi import APIRouter, Depends, WebSocket, status

from shared.redis import ConsolePubSub, relay_console

from ..dependencies import get_console, get_manager, websocket_token_ok
from ..manager import ServerManager

router = APIRouter(tags=["console"])


@router.websocket("/ws/console/{server_id}")
async def console(
    websocket: WebSocket,
    server_id: str,
    authorized: bool = Depends(websocket_token_ok),
    manager: ServerManager = Depends(get_manager),
    console: ConsolePubSub = Depends(get_console),
) -> None:
    if not authorized:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return
    if server_id not in manager.registry:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Server not found")
        return
    await websocket.accept()
    await relay_console(websocket, console, server_id)
