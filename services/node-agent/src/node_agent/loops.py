"""Health and metrics passes over the server registry.

Each pass works on a snapshot and visits servers one after another. A
failing docker call for one server is logged and the pass moves on.
"""

import structlog

from .manager import ServerManager

logger = structlog.get_logger()


async def health_pass(manager: ServerManager) -> int:
    """Refresh every server's status. Returns how many were checked."""
    checked = 0
    for entry in await manager.registry.snapshot():
        try:
            status = await manager.refresh_status(entry)
        except Exception as e:
            logger.warning(
                "health_check_failed",
                server_id=entry.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        checked += 1

        console = manager.console
        if status == "running" and console is not None and not console.is_streaming(entry.id):
            await console.attach(entry.id, entry.container_id)

    logger.debug("health_pass_complete", checked=checked)
    return checked


async def metrics_pass(manager: ServerManager) -> int:
    """Sample stats for every running server. Returns how many were sampled."""
    sampled = 0
    for entry in await manager.registry.snapshot():
        if not entry.is_running:
            continue
        try:
            await manager.refresh_stats(entry)
        except Exception as e:
            logger.warning(
                "metrics_collection_failed",
                server_id=entry.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        sampled += 1
    return sampled
