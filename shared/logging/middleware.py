"""HTTP middleware that binds a correlation ID and logs every request."""

import time

from fastapi import Request
import structlog

from .correlation import CORRELATION_HEADER, new_correlation_id


async def correlation_middleware(request: Request, call_next):
    correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
    structlog.contextvars.bind_contextvars(
        correlation_id=correlation_id, method=request.method, path=request.url.path
    )

    start = time.time()
    logger = structlog.get_logger()

    try:
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)

        if response.status_code >= 500:  # noqa: PLR2004
            logger.error(
                "http_request_failed", status_code=response.status_code, duration_ms=duration_ms
            )
        else:
            logger.info("http_request", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
    except Exception as e:
        logger.error(
            "http_request_exception",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=round((time.time() - start) * 1000, 2),
            exc_info=True,
        )
        raise
    finally:
        structlog.contextvars.unbind_contextvars("correlation_id", "method", "path")
