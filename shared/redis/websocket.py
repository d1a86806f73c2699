"""Relay between a console WebSocket and the server's pub/sub topics."""

import asyncio
import contextlib

from fastapi import WebSocket, WebSocketDisconnect
import structlog

from .console import ConsolePubSub, ConsoleSubscription

logger = structlog.get_logger(__name__)


async def _forward_output(websocket: WebSocket, subscription: ConsoleSubscription) -> None:
    async for message in subscription:
        await websocket.send_text(message.data)


async def relay_console(websocket: WebSocket, console: ConsolePubSub, server_id: str) -> None:
    """Stream output to an accepted WebSocket and publish whatever it sends.

    Returns when the viewer disconnects; only this viewer's subscription
    is torn down.
    """
    async with console.subscribe_output(server_id) as subscription:
        forward = asyncio.create_task(_forward_output(websocket, subscription))
        logger.info("console_viewer_connected", server_id=server_id)
        try:
            while True:
                text = await websocket.receive_text()
                await console.publish_input(server_id, text)
        except WebSocketDisconnect:
            logger.info("console_viewer_disconnected", server_id=server_id)
        finally:
            forward.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                await forward
