"""Tests for the agent's panel client, using respx to stand in for the panel."""

import json
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio
import respx

from node_agent.errors import PanelRequestError
from node_agent.panel_client import PanelClient, register_with_retry
from shared.contracts import BackupReport

REMOTE = "https://panel.test/api/remote"
CREDENTIAL = "abcdefghijklmnop.s3cr3t-daemon-token"


@pytest_asyncio.fixture
async def panel():
    client = PanelClient("https://panel.test/", "node-1", CREDENTIAL, timeout=2.0)
    yield client
    await client.close()


@pytest.mark.asyncio
@respx.mock
async def test_register_sends_node_credential(panel):
    route = respx.post(f"{REMOTE}/nodes/node-1/register").mock(return_value=httpx.Response(204))

    await panel.register("s3cr3t-daemon-token", 8443)

    request = route.calls.last.request
    assert request.headers["Authorization"] == f"Bearer {CREDENTIAL}"
    assert json.loads(request.content) == {
        "node_id": "node-1",
        "token": "s3cr3t-daemon-token",
        "listen_port": 8443,
    }


@pytest.mark.asyncio
@respx.mock
async def test_fetch_servers(panel):
    respx.get(f"{REMOTE}/nodes/node-1/servers").mock(
        return_value=httpx.Response(
            200,
            json=[
                {
                    "id": "srv-1",
                    "uuid_short": "srv-1",
                    "docker_image": "ghcr.io/gameplane/minecraft:java17",
                    "memory_limit": 1024,
                    "disk_limit": 2048,
                    "cpu_limit": 100,
                }
            ],
        )
    )

    specs = await panel.fetch_servers()

    assert [spec.id for spec in specs] == ["srv-1"]
    assert specs[0].memory_limit == 1024  # noqa: PLR2004


@pytest.mark.asyncio
@respx.mock
async def test_fetch_configuration(panel):
    respx.get(f"{REMOTE}/nodes/node-1/configuration").mock(
        return_value=httpx.Response(
            200,
            json={
                "uuid": "node-1",
                "token_id": "abcdefghijklmnop",
                "token": "s3cr3t-daemon-token",
                "api": {
                    "host": "node1.example.com",
                    "port": 8443,
                    "ssl": {"enabled": False, "cert": "c", "key": "k"},
                },
                "system": {"data": "/var/lib/gameplane/servers", "sftp": {"bind_port": 2022}},
                "remote": "https://panel.test",
            },
        )
    )

    config = await panel.fetch_configuration()

    assert config.api.port == 8443  # noqa: PLR2004
    assert config.debug is False


@pytest.mark.asyncio
@respx.mock
async def test_reports(panel):
    install = respx.post(f"{REMOTE}/servers/srv-1/install").mock(return_value=httpx.Response(204))
    backup = respx.post(f"{REMOTE}/backups/bk-1").mock(return_value=httpx.Response(204))

    await panel.report_install("srv-1", successful=False)
    await panel.report_backup("bk-1", BackupReport(successful=True, checksum="sha256:ab", size=10))

    assert json.loads(install.calls.last.request.content) == {"successful": False}
    assert json.loads(backup.calls.last.request.content)["checksum"] == "sha256:ab"


@pytest.mark.asyncio
@respx.mock
async def test_rejection_becomes_panel_error(panel):
    respx.get(f"{REMOTE}/nodes/node-1/servers").mock(return_value=httpx.Response(403))

    with pytest.raises(PanelRequestError, match="403"):
        await panel.fetch_servers()


@pytest.mark.asyncio
@respx.mock
async def test_unreachable_panel_becomes_panel_error(panel):
    respx.get(f"{REMOTE}/nodes/node-1/servers").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(PanelRequestError, match="unreachable"):
        await panel.fetch_servers()


class TestRegisterWithRetry:
    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_until_registered(self, panel):
        route = respx.post(f"{REMOTE}/nodes/node-1/register").mock(
            side_effect=[httpx.Response(503), httpx.Response(204)]
        )

        with patch("node_agent.panel_client.asyncio.sleep") as sleep:
            ok = await register_with_retry(panel, "tok", 8443, retry_interval=30, max_retries=5)

        assert ok is True
        assert route.call_count == 2  # noqa: PLR2004
        sleep.assert_awaited_once_with(30)

    @pytest.mark.asyncio
    @respx.mock
    async def test_gives_up_after_max_retries(self, panel):
        route = respx.post(f"{REMOTE}/nodes/node-1/register").mock(
            return_value=httpx.Response(500)
        )

        with patch("node_agent.panel_client.asyncio.sleep") as sleep:
            ok = await register_with_retry(panel, "tok", 8443, retry_interval=1, max_retries=3)

        assert ok is False
        assert route.call_count == 3  # noqa: PLR2004
        assert sleep.await_count == 2  # noqa: PLR2004
