"""Node transport: sends lifecycle commands to a node's agent.

The concrete implementation is an httpx client authenticated with the
node's daemon token. Every failure (connection error, timeout, non-2xx)
surfaces as RemoteFailure; callers never see raw httpx errors.
"""

from typing import Any, Protocol

import httpx
import structlog

from shared.contracts import (
    BackupRequest,
    CommandRequest,
    PowerAction,
    ServerSpec,
    ServerState,
    ServerStats,
    SystemInfo,
)
from shared.logging import correlation_headers

from .errors import RemoteFailure
from .models import Node

logger = structlog.get_logger()


class NodeTransport(Protocol):
    """Operations the lifecycle orchestrator can ask of a node."""

    async def create_server(self, node: Node, spec: ServerSpec) -> ServerState: ...

    async def delete_server(self, node: Node, server_id: str) -> None: ...

    async def power(self, node: Node, server_id: str, action: PowerAction) -> ServerState: ...

    async def send_command(self, node: Node, server_id: str, command: str) -> None: ...

    async def get_stats(self, node: Node, server_id: str) -> ServerStats: ...

    async def list_servers(self, node: Node) -> list[ServerState]: ...

    async def reinstall_server(self, node: Node, spec: ServerSpec) -> ServerState: ...

    async def create_backup(self, node: Node, server_id: str, request: BackupRequest) -> None: ...

    async def system_info(self, node: Node) -> SystemInfo: ...

    async def close(self) -> None: ...


class HttpNodeTransport:
    """NodeTransport over the agent's HTTP API."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _request(self, node: Node, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {node.daemon_token}", **correlation_headers()}
        url = f"{node.base_url}{path}"
        try:
            resp = await client.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.warning(
                "node_request_rejected",
                node_id=str(node.id),
                path=path,
                status_code=e.response.status_code,
                detail=detail,
            )
            raise RemoteFailure(
                f"Node {node.name} rejected {method} {path}: {e.response.status_code} {detail}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "node_request_failed",
                node_id=str(node.id),
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RemoteFailure(f"Node {node.name} unreachable: {type(e).__name__}") from e
        return resp

    async def create_server(self, node: Node, spec: ServerSpec) -> ServerState:
        resp = await self._request(node, "POST", "/api/servers", json=spec.model_dump(mode="json"))
        return ServerState.model_validate(resp.json())

    async def delete_server(self, node: Node, server_id: str) -> None:
        await self._request(node, "DELETE", f"/api/servers/{server_id}")

    async def power(self, node: Node, server_id: str, action: PowerAction) -> ServerState:
        resp = await self._request(node, "POST", f"/api/servers/{server_id}/power/{action.value}")
        return ServerState.model_validate(resp.json())

    async def send_command(self, node: Node, server_id: str, command: str) -> None:
        body = CommandRequest(command=command).model_dump()
        await self._request(node, "POST", f"/api/servers/{server_id}/command", json=body)

    async def get_stats(self, node: Node, server_id: str) -> ServerStats:
        resp = await self._request(node, "GET", f"/api/servers/{server_id}/stats")
        return ServerStats.model_validate(resp.json())

    async def list_servers(self, node: Node) -> list[ServerState]:
        resp = await self._request(node, "GET", "/api/servers")
        return [ServerState.model_validate(item) for item in resp.json()]

    async def reinstall_server(self, node: Node, spec: ServerSpec) -> ServerState:
        resp = await self._request(
            node, "POST", f"/api/servers/{spec.id}/reinstall", json=spec.model_dump(mode="json")
        )
        return ServerState.model_validate(resp.json())

    async def create_backup(self, node: Node, server_id: str, request: BackupRequest) -> None:
        await self._request(
            node, "POST", f"/api/servers/{server_id}/backups", json=request.model_dump()
        )

    async def system_info(self, node: Node) -> SystemInfo:
        resp = await self._request(node, "GET", "/api/system")
        return SystemInfo.model_validate(resp.json())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)[:200]
