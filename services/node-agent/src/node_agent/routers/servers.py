"""Server lifecycle routes called by the panel's node transport."""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
import structlog

from shared.contracts import (
    BackupRequest,
    CommandRequest,
    ConsoleLogs,
    PowerAction,
    ServerSpec,
    ServerState,
    ServerStats,
)

from ..backups import BackupArchiver
from ..dependencies import get_archiver, get_manager, get_panel, require_token
from ..errors import PanelRequestError
from ..manager import ServerManager
from ..panel_client import PanelClient

logger = structlog.get_logger()

router = APIRouter(prefix="/servers", tags=["servers"], dependencies=[Depends(require_token)])


async def report_install(manager: ServerManager, panel: PanelClient, server_id: str) -> None:
    """Tell the panel whether the install left a container behind."""
    entry = manager.registry.find(server_id)
    successful = entry is not None and entry.container_id is not None
    try:
        await panel.report_install(server_id, successful)
    except PanelRequestError as e:
        logger.error("install_report_failed", server_id=server_id, error=e.message)


@router.get("", response_model=list[ServerState])
async def list_servers(manager: ServerManager = Depends(get_manager)) -> list[ServerState]:
    return await manager.list_states()


@router.post("", response_model=ServerState, status_code=status.HTTP_201_CREATED)
async def create_server(
    spec: ServerSpec,
    background_tasks: BackgroundTasks,
    manager: ServerManager = Depends(get_manager),
    panel: PanelClient = Depends(get_panel),
) -> ServerState:
    state = await manager.create_server(spec)
    background_tasks.add_task(report_install, manager, panel, spec.id)
    return state


@router.get("/{server_id}", response_model=ServerState)
async def get_server(server_id: str, manager: ServerManager = Depends(get_manager)) -> ServerState:
    return manager.get_state(server_id)


@router.delete("/{server_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(server_id: str, manager: ServerManager = Depends(get_manager)) -> Response:
    await manager.delete(server_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{server_id}/power/{action}", response_model=ServerState)
async def power(
    server_id: str,
    action: PowerAction,
    timeout: int | None = Query(default=None, ge=0),
    manager: ServerManager = Depends(get_manager),
) -> ServerState:
    """Start, stop, restart or kill. `timeout` applies to stop and restart."""
    if action == PowerAction.START:
        return await manager.start(server_id)
    if action == PowerAction.STOP:
        return await manager.stop(server_id, timeout=timeout)
    if action == PowerAction.RESTART:
        return await manager.restart(server_id, timeout=timeout)
    return await manager.kill(server_id)


@router.post("/{server_id}/command", status_code=status.HTTP_204_NO_CONTENT)
async def send_command(
    server_id: str, request: CommandRequest, manager: ServerManager = Depends(get_manager)
) -> Response:
    await manager.send_command(server_id, request.command)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{server_id}/logs", response_model=ConsoleLogs)
async def logs(
    server_id: str,
    lines: int = Query(default=100, ge=1, le=10_000),
    manager: ServerManager = Depends(get_manager),
) -> ConsoleLogs:
    return await manager.logs(server_id, lines=lines)


@router.get("/{server_id}/stats", response_model=ServerStats)
async def stats(server_id: str, manager: ServerManager = Depends(get_manager)) -> ServerStats:
    return await manager.stats(server_id)


@router.post("/{server_id}/reinstall", response_model=ServerState)
async def reinstall(
    server_id: str,
    spec: ServerSpec,
    background_tasks: BackgroundTasks,
    manager: ServerManager = Depends(get_manager),
    panel: PanelClient = Depends(get_panel),
) -> ServerState:
    state = await manager.reinstall(server_id, spec)
    background_tasks.add_task(report_install, manager, panel, server_id)
    return state


@router.post("/{server_id}/backups", status_code=status.HTTP_202_ACCEPTED)
async def create_backup(
    server_id: str,
    request: BackupRequest,
    background_tasks: BackgroundTasks,
    manager: ServerManager = Depends(get_manager),
    archiver: BackupArchiver = Depends(get_archiver),
) -> dict:
    """Archive the server's data in the background; the outcome is reported to the panel."""
    manager.registry.get(server_id)
    background_tasks.add_task(archiver.run, server_id, request.backup_id)
    return {"backup_id": request.backup_id, "status": "accepted"}
