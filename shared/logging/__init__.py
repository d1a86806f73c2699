from .config import get_logger, setup_logging
from .correlation import (
    CORRELATION_HEADER,
    clear_context,
    correlation_headers,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
)
from .middleware import correlation_middleware

__all__ = [
    "CORRELATION_HEADER",
    "setup_logging",
    "get_logger",
    "new_correlation_id",
    "set_correlation_id",
    "get_correlation_id",
    "correlation_headers",
    "correlation_middleware",
    "clear_context",
]
