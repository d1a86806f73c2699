"""Audit trail hook.

Persistence lives outside the panel; here every entry becomes an `audit`
log event. Recording must never fail the operation being audited.
"""

from typing import Any

import structlog

logger = structlog.get_logger()


def record(action: str, resource: str, resource_id: Any, **details: Any) -> None:
    try:
        logger.info(
            "audit",
            action=action,
            resource=resource,
            resource_id=str(resource_id),
            **details,
        )
    except Exception as e:
        logger.warning("audit_write_failed", action=action, error=str(e))
