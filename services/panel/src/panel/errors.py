"""Domain errors raised by the panel and their HTTP mapping."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger()


class PanelError(Exception):
    """Base class for errors the API turns into a JSON response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PanelError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(PanelError):
    """Duplicate entity or a state that does not allow the operation."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ResourceExhausted(PanelError):
    status_code = status.HTTP_409_CONFLICT
    code = "resource_exhausted"


class NoAvailableAllocation(ResourceExhausted):
    code = "no_available_allocation"


class RemoteFailure(PanelError):
    """The node agent was unreachable or rejected the command."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "remote_failure"


class ValidationFailed(PanelError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_failed"


async def panel_error_handler(request: Request, exc: PanelError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error  # noqa: PLR2004
    log("request_rejected", code=exc.code, detail=exc.message, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PanelError, panel_error_handler)
