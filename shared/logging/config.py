"""structlog setup shared by the panel and the node agent.

Both processes log through stdlib logging so that uvicorn, httpx and
docker-py lines land in the same stream as our own events.
"""

import logging
import os
import sys
from typing import Literal

import structlog
from structlog.types import Processor

# Chatty per-request loggers from third-party clients
QUIET_LOGGERS = ("urllib3", "docker", "httpx", "httpcore")


def build_processors(log_format: str) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(), exception_formatter=structlog.dev.plain_traceback
            )
        )
    return chain


def setup_logging(
    service_name: str | None = None,
    log_format: Literal["json", "console"] | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog for one process.

    Arguments left as None are read from SERVICE_NAME, LOG_FORMAT and
    LOG_LEVEL, defaulting to "unknown", "console" and "INFO".
    """
    service_name = service_name or os.getenv("SERVICE_NAME", "unknown")
    log_format = log_format or os.getenv("LOG_FORMAT", "console")
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(log_level)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=build_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger().info(
        "logging_initialized", service=service_name, log_format=log_format, log_level=log_level
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
