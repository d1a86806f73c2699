"""Shared fixtures for node agent tests.

Docker is always an AsyncMock of DockerClientWrapper; nothing here talks
to a real daemon.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from node_agent.config import AgentSettings
from node_agent.docker_ops import DockerClientWrapper
from node_agent.manager import ServerManager
from node_agent.registry import ServerEntry
from shared.contracts import AllocationSpec, ServerSpec

NODE_IP = "10.0.0.5"
TOKEN = "s3cr3t-daemon-token"
TOKEN_ID = "abcdefghijklmnop"


@pytest.fixture
def settings(tmp_path) -> AgentSettings:
    return AgentSettings(
        _env_file=None,
        node_id="node-1",
        token=TOKEN,
        token_id=TOKEN_ID,
        panel_url="https://panel.test",
        data_path=str(tmp_path / "data"),
        backup_path=str(tmp_path / "backups"),
        redis_url="redis://localhost:6379/0",
        docker_dns=[],
        stop_timeout=30,
    )


def build_spec(server_id: str = "srv-1", ports=(25565,), **overrides) -> ServerSpec:
    values = {
        "id": server_id,
        "uuid_short": server_id[:8],
        "docker_image": "ghcr.io/gameplane/minecraft:java17",
        "startup_cmd": "java -Xmx1024M -jar server.jar",
        "environment": {"EULA": "true"},
        "memory_limit": 1024,
        "disk_limit": 5120,
        "cpu_limit": 150,
        "allocations": [
            AllocationSpec(ip=NODE_IP, port=port, is_primary=i == 0) for i, port in enumerate(ports)
        ],
    }
    values.update(overrides)
    return ServerSpec(**values)


@pytest.fixture
def make_spec():
    return build_spec


@pytest.fixture
def spec() -> ServerSpec:
    return build_spec()


@pytest.fixture
def docker_client() -> AsyncMock:
    client = AsyncMock(spec=DockerClientWrapper)
    client.close = MagicMock()
    client.image_exists.return_value = True
    client.create_container.return_value = MagicMock(id="c0ffee")
    client.inspect_container.return_value = {"State": {"Status": "running", "Running": True}}
    client.container_stats.return_value = {}
    client.container_logs.return_value = b""
    client.exec_in_container.return_value = (0, b"")
    client.list_containers.return_value = []
    return client


@pytest.fixture
def manager(docker_client, settings) -> ServerManager:
    return ServerManager(docker_client, settings)


@pytest.fixture
def add_entry(manager):
    """Put an entry straight into the registry, bypassing docker."""

    async def _add(server_id: str = "srv-1", status: str = "exited", **fields) -> ServerEntry:
        entry = ServerEntry(
            id=server_id,
            spec=build_spec(server_id),
            container_id=fields.pop("container_id", f"container-{server_id}"),
            status=status,
            **fields,
        )
        await manager.registry.put(entry)
        return entry

    return _add
