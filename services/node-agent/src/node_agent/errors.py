"""Agent errors and their HTTP mapping."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger()


class AgentError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "agent_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ServerNotFound(AgentError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "server_not_found"


class ServerAlreadyExists(AgentError):
    status_code = status.HTTP_409_CONFLICT
    code = "server_already_exists"


class ServerNotRunning(AgentError):
    status_code = status.HTTP_409_CONFLICT
    code = "server_not_running"


class ContainerRuntimeError(AgentError):
    """Docker refused or failed a call. The message is docker's own."""

    code = "container_runtime_error"


class PanelRequestError(AgentError):
    """The panel could not be reached or rejected a callback."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "panel_request_failed"


async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error  # noqa: PLR2004
    log("request_rejected", code=exc.code, detail=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AgentError, agent_error_handler)
