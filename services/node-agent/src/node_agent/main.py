"""Node agent - FastAPI service supervising this node's server containers."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from shared.logging import correlation_middleware, setup_logging
from shared.redis import ConsolePubSub
from shared.tasks import run_periodic_task

from . import routers
from .backups import BackupArchiver
from .config import get_settings
from .console import ConsoleBridge
from .docker_ops import DockerClientWrapper
from .errors import PanelRequestError, register_error_handlers
from .loops import health_pass, metrics_pass
from .manager import ServerManager
from .panel_client import PanelClient, register_with_retry

logger = structlog.get_logger()

CONSOLE_RESUBSCRIBE_INTERVAL = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
    )

    docker_client = DockerClientWrapper(timeout=settings.docker_timeout)
    manager = ServerManager(docker_client, settings)
    panel = PanelClient(
        settings.panel_url, settings.node_id, settings.callback_token, timeout=settings.panel_timeout
    )
    console = ConsolePubSub(redis_url=settings.redis_url)
    await console.connect()
    bridge = ConsoleBridge(console, manager)
    manager.console = bridge

    app.state.settings = settings
    app.state.manager = manager
    app.state.panel = panel
    app.state.console = console
    app.state.archiver = BackupArchiver(settings.data_path, settings.backup_path, panel)

    try:
        known_specs = await panel.fetch_servers()
    except PanelRequestError as e:
        logger.warning("known_servers_unavailable", error=e.message)
        known_specs = []
    await manager.load_servers(known_specs)

    tasks = [
        asyncio.create_task(
            run_periodic_task(
                lambda: health_pass(manager), interval=settings.health_interval, name="health"
            )
        ),
        asyncio.create_task(
            run_periodic_task(
                lambda: metrics_pass(manager), interval=settings.metrics_interval, name="metrics"
            )
        ),
        # Re-subscribes if the broker connection drops
        asyncio.create_task(
            run_periodic_task(
                bridge.listen_inputs,
                interval=CONSOLE_RESUBSCRIBE_INTERVAL,
                name="console_inputs",
            )
        ),
        asyncio.create_task(
            register_with_retry(
                panel,
                token=settings.token,
                listen_port=settings.api_port,
                retry_interval=settings.register_retry_interval,
                max_retries=settings.register_max_retries,
            )
        ),
    ]
    logger.info("node_agent_started", node_id=settings.node_id, servers=len(manager.registry))

    yield

    logger.info("shutdown_initiated")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await bridge.close()
    await panel.close()
    await console.close()
    docker_client.close()
    logger.info("shutdown_complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Gameplane Node Agent",
        description="Supervises game-server containers on one node",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.middleware("http")(correlation_middleware)
    register_error_handlers(app)

    app.include_router(routers.health.router)
    app.include_router(routers.servers.router, prefix="/api")
    app.include_router(routers.system.router, prefix="/api")
    app.include_router(routers.console.router)
    return app


app = create_app()
