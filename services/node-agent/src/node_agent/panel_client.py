"""HTTP client for the panel's node-authenticated callback API."""

import asyncio
from typing import Any

import httpx
import structlog

from shared.contracts import (
    BackupReport,
    InstallReport,
    NodeConfiguration,
    NodeRegistration,
    ServerSpec,
)
from shared.logging import correlation_headers

from .errors import PanelRequestError

logger = structlog.get_logger()


class PanelClient:
    """Client for `/api/remote/*`, authenticated as `<token_id>.<token>`."""

    def __init__(self, base_url: str, node_id: str, credential: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.node_id = node_id
        self.credential = credential
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/api/remote",
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.credential}"},
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, headers=correlation_headers(), **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "panel_request_rejected", path=path, status_code=e.response.status_code
            )
            raise PanelRequestError(
                f"Panel rejected {method} {path}: {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "panel_request_failed", path=path, error=str(e), error_type=type(e).__name__
            )
            raise PanelRequestError(f"Panel unreachable: {type(e).__name__}") from e
        return resp

    async def register(self, token: str, listen_port: int) -> None:
        body = NodeRegistration(node_id=self.node_id, token=token, listen_port=listen_port)
        await self._request("POST", f"/nodes/{self.node_id}/register", json=body.model_dump())

    async def fetch_configuration(self) -> NodeConfiguration:
        resp = await self._request("GET", f"/nodes/{self.node_id}/configuration")
        return NodeConfiguration.model_validate(resp.json())

    async def fetch_servers(self) -> list[ServerSpec]:
        resp = await self._request("GET", f"/nodes/{self.node_id}/servers")
        return [ServerSpec.model_validate(item) for item in resp.json()]

    async def report_install(self, server_id: str, successful: bool) -> None:
        body = InstallReport(successful=successful)
        await self._request("POST", f"/servers/{server_id}/install", json=body.model_dump())

    async def report_backup(self, backup_id: str, report: BackupReport) -> None:
        await self._request("POST", f"/backups/{backup_id}", json=report.model_dump())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


async def register_with_retry(
    client: PanelClient,
    token: str,
    listen_port: int,
    retry_interval: float,
    max_retries: int,
) -> bool:
    """Announce this node to the panel, retrying a bounded number of times.

    Returns False after the last failed attempt; the agent keeps serving.
    """
    for attempt in range(1, max_retries + 1):
        try:
            await client.register(token, listen_port)
        except PanelRequestError as e:
            logger.warning(
                "node_registration_failed",
                attempt=attempt,
                max_retries=max_retries,
                error=e.message,
            )
            if attempt < max_retries:
                await asyncio.sleep(retry_interval)
            continue
        logger.info("node_registered", node_id=client.node_id, attempt=attempt)
        return True

    logger.error("node_registration_abandoned", node_id=client.node_id, attempts=max_retries)
    return False
