"""Tests for the HTTP node transport, using respx to stand in for the agent."""

import json
import uuid

import httpx
import pytest
import pytest_asyncio
import respx

from panel.errors import RemoteFailure
from panel.models import Node
from panel.transport import HttpNodeTransport
from shared.contracts import AllocationSpec, BackupRequest, PowerAction, ServerSpec
from shared.logging import CORRELATION_HEADER, set_correlation_id

BASE = "http://node1.example.com:8443"


@pytest.fixture
def node() -> Node:
    return Node(
        id=uuid.uuid4(),
        name="node1",
        fqdn="node1.example.com",
        scheme="http",
        daemon_port=8443,
        daemon_token_id="a" * 16,
        daemon_token="a" * 64,
    )


@pytest_asyncio.fixture
async def transport():
    transport = HttpNodeTransport(timeout=2.0)
    yield transport
    await transport.close()


def _spec() -> ServerSpec:
    return ServerSpec(
        id="5f0c2f2e-0000-4000-8000-000000000001",
        uuid_short="5f0c2f2e",
        docker_image="ghcr.io/gameplane/minecraft:java17",
        memory_limit=1024,
        disk_limit=2048,
        cpu_limit=100,
        allocations=[AllocationSpec(ip="10.0.0.5", port=25565, is_primary=True)],
    )


@pytest.mark.asyncio
@respx.mock
async def test_power_sends_bearer_token(transport, node):
    route = respx.post(f"{BASE}/api/servers/abc/power/start").mock(
        return_value=httpx.Response(200, json={"id": "abc", "status": "running"})
    )

    state = await transport.power(node, "abc", PowerAction.START)

    assert state.status == "running"
    assert route.calls.last.request.headers["Authorization"] == f"Bearer {node.daemon_token}"


@pytest.mark.asyncio
@respx.mock
async def test_correlation_id_is_forwarded(transport, node):
    route = respx.post(f"{BASE}/api/servers/abc/command").mock(return_value=httpx.Response(204))
    set_correlation_id("req-42")

    await transport.send_command(node, "abc", "say hi")

    request = route.calls.last.request
    assert request.headers[CORRELATION_HEADER] == "req-42"
    assert json.loads(request.content) == {"command": "say hi"}


@pytest.mark.asyncio
@respx.mock
async def test_create_server_posts_spec(transport, node):
    route = respx.post(f"{BASE}/api/servers").mock(
        return_value=httpx.Response(
            201, json={"id": _spec().id, "container_id": "c0ffee", "status": "created"}
        )
    )

    state = await transport.create_server(node, _spec())

    assert state.container_id == "c0ffee"
    body = json.loads(route.calls.last.request.content)
    assert body["allocations"][0]["port"] == 25565  # noqa: PLR2004


@pytest.mark.asyncio
@respx.mock
async def test_rejection_becomes_remote_failure(transport, node):
    respx.post(f"{BASE}/api/servers/abc/power/stop").mock(
        return_value=httpx.Response(409, json={"detail": "Server abc is not running"})
    )

    with pytest.raises(RemoteFailure, match="Server abc is not running"):
        await transport.power(node, "abc", PowerAction.STOP)


@pytest.mark.asyncio
@respx.mock
async def test_non_json_error_body(transport, node):
    respx.delete(f"{BASE}/api/servers/abc").mock(
        return_value=httpx.Response(500, text="Internal Server Error")
    )

    with pytest.raises(RemoteFailure, match="500"):
        await transport.delete_server(node, "abc")


@pytest.mark.asyncio
@respx.mock
async def test_connection_error_becomes_remote_failure(transport, node):
    respx.get(f"{BASE}/api/servers").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(RemoteFailure, match="unreachable"):
        await transport.list_servers(node)


@pytest.mark.asyncio
@respx.mock
async def test_timeout_becomes_remote_failure(transport, node):
    respx.get(f"{BASE}/api/servers/abc/stats").mock(side_effect=httpx.ReadTimeout("slow"))

    with pytest.raises(RemoteFailure):
        await transport.get_stats(node, "abc")


@pytest.mark.asyncio
@respx.mock
async def test_list_servers_parses_states(transport, node):
    respx.get(f"{BASE}/api/servers").mock(
        return_value=httpx.Response(
            200,
            json=[
                {"id": "a", "container_id": "1", "status": "running"},
                {"id": "b", "container_id": "2", "status": "exited"},
            ],
        )
    )

    states = await transport.list_servers(node)

    assert [(s.id, s.status) for s in states] == [("a", "running"), ("b", "exited")]


@pytest.mark.asyncio
@respx.mock
async def test_create_backup_and_system_info(transport, node):
    backup_route = respx.post(f"{BASE}/api/servers/abc/backups").mock(
        return_value=httpx.Response(202, json={})
    )
    respx.get(f"{BASE}/api/system").mock(
        return_value=httpx.Response(200, json={"architecture": "x86_64", "cpu_count": 16})
    )

    await transport.create_backup(node, "abc", BackupRequest(backup_id="b1", name="nightly"))
    info = await transport.system_info(node)

    assert backup_route.called
    assert info.cpu_count == 16  # noqa: PLR2004
