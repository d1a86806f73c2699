"""Panel service - FastAPI control plane."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from shared.logging import correlation_middleware, setup_logging
from shared.tasks import run_periodic_task

from . import routers
from .config import get_settings
from .database import async_session_maker, engine
from .dependencies import close_singletons, get_console, get_transport, server_locks
from .errors import register_error_handlers
from .tasks import sync_all_nodes

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
    )
    await get_console()
    transport = get_transport()

    sync_task = asyncio.create_task(
        run_periodic_task(
            lambda: sync_all_nodes(async_session_maker, transport, server_locks),
            interval=settings.status_sync_interval,
            name="status_sync",
        )
    )

    yield

    logger.info("shutdown_initiated")
    sync_task.cancel()
    await asyncio.gather(sync_task, return_exceptions=True)
    await close_singletons()
    await engine.dispose()
    logger.info("shutdown_complete")


app = FastAPI(
    title="Gameplane Panel",
    description="Control plane for game-server placement and lifecycle",
    version="0.1.0",
    lifespan=lifespan,
)

app.middleware("http")(correlation_middleware)
register_error_handlers(app)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {"name": "Gameplane Panel", "version": "0.1.0"}


app.include_router(routers.health.router)
app.include_router(routers.locations.router, prefix="/api")
app.include_router(routers.nodes.router, prefix="/api")
app.include_router(routers.servers.router, prefix="/api")
app.include_router(routers.backups.router, prefix="/api")
app.include_router(routers.remote.router, prefix="/api")
app.include_router(routers.console.router, prefix="/api")
