"""Background task helpers shared by the panel and the node agent."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()


async def run_periodic_task(
    coro_func: Callable[[], Awaitable[object]], interval: float, name: str
) -> None:
    """Run `coro_func` every `interval` seconds until cancelled.

    A failing iteration is logged; the next one still runs.
    """
    logger.info("periodic_task_started", task=name, interval=interval)
    while True:
        try:
            await coro_func()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(
                "periodic_task_error",
                task=name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            break
    logger.info("periodic_task_stopped", task=name)
