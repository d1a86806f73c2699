"""Agent side of the console: viewer input in, container output out."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import time
from typing import Any

import structlog

from shared.redis import ConsolePubSub

from .errors import AgentError

logger = structlog.get_logger()


@dataclass(eq=False)
class _OutputStream:
    task: asyncio.Task | None = None
    # docker CancellableStream, set once the log follow is open
    stream: Any = None
    closed: bool = False


class ConsoleBridge:
    """
    Connects the per-server console topics to the containers.

    Input arriving on any `console:<id>:input` topic is executed as a
    command when the server is running and dropped otherwise. Output of
    each running container is followed in a worker thread and republished
    on `console:<id>:output`.
    """

    def __init__(self, pubsub: ConsolePubSub, manager, max_streams: int = 64):
        self.pubsub = pubsub
        self.manager = manager
        self._streams: dict[str, _OutputStream] = {}
        # Each followed log holds a thread while it blocks on the socket
        self._executor = ThreadPoolExecutor(max_workers=max_streams, thread_name_prefix="console")

    # --- input ---

    async def listen_inputs(self) -> None:
        async with self.pubsub.subscribe_inputs() as subscription:
            logger.info("console_input_listener_started")
            async for message in subscription:
                await self.handle_input(message.server_id, message.data)

    async def handle_input(self, server_id: str, text: str) -> bool:
        """Execute one line of viewer input. Returns False if it was dropped."""
        entry = self.manager.registry.find(server_id)
        if entry is None or not entry.is_running:
            logger.debug("console_input_dropped", server_id=server_id)
            return False
        try:
            await self.manager.send_command(server_id, text)
        except AgentError as e:
            logger.warning("console_input_failed", server_id=server_id, error=e.message)
            return False
        return True

    # --- output ---

    def is_streaming(self, server_id: str) -> bool:
        handle = self._streams.get(server_id)
        return handle is not None and handle.task is not None and not handle.task.done()

    async def attach(self, server_id: str, container_id: str) -> None:
        if self.is_streaming(server_id):
            return
        handle = _OutputStream()
        handle.task = asyncio.create_task(self._pump(server_id, container_id, handle))
        self._streams[server_id] = handle
        logger.debug("console_stream_attached", server_id=server_id)

    async def detach(self, server_id: str) -> None:
        handle = self._streams.pop(server_id, None)
        if handle is None:
            return
        handle.closed = True
        if handle.stream is not None:
            # Unblocks the worker thread sitting in next()
            handle.stream.close()
        if handle.task is not None:
            handle.task.cancel()
            await asyncio.gather(handle.task, return_exceptions=True)
        logger.debug("console_stream_detached", server_id=server_id)

    async def _pump(self, server_id: str, container_id: str, handle: _OutputStream) -> None:
        loop = asyncio.get_running_loop()
        try:
            handle.stream = await self.manager.docker.follow_logs(
                container_id, since=int(time.time())
            )
            if handle.closed:
                handle.stream.close()
                return
            while True:
                chunk = await loop.run_in_executor(self._executor, next, handle.stream, None)
                if chunk is None:
                    break
                await self.pubsub.publish_output(server_id, chunk.decode("utf-8", errors="replace"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not handle.closed:
                logger.warning(
                    "console_stream_failed",
                    server_id=server_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        finally:
            if self._streams.get(server_id) is handle:
                del self._streams[server_id]

    async def close(self) -> None:
        for server_id in list(self._streams):
            await self.detach(server_id)
        self._executor.shutdown(wait=False, cancel_futures=True)
