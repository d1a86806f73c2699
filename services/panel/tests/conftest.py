"""Shared fixtures for panel tests.

Every test gets its own SQLite file database; the node transport is an
AsyncMock so no agent is ever contacted.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PANEL_URL", "https://panel.test")

from unittest.mock import AsyncMock  # noqa: E402
import uuid  # noqa: E402

from fakeredis import aioredis  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import update  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from panel.config import PanelSettings  # noqa: E402
from panel.lifecycle import LifecycleOrchestrator  # noqa: E402
from panel.locks import ServerLocks  # noqa: E402
from panel.models import (  # noqa: E402
    Allocation,
    Base,
    Location,
    Node,
    Server,
    ServerStatus,
    generate_daemon_token,
)
from panel.schemas import ServerCreate  # noqa: E402
from panel.transport import HttpNodeTransport  # noqa: E402
from shared.contracts import ServerState, ServerStats, SystemInfo  # noqa: E402
from shared.redis import ConsolePubSub  # noqa: E402

NODE_IP = "10.0.0.5"


@pytest.fixture
def settings() -> PanelSettings:
    return PanelSettings(database_url="sqlite+aiosqlite://", panel_url="https://panel.test")


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'panel.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def reload(session_maker):
    """Read a row through a fresh session, bypassing any identity map."""

    async def _reload(model, pk):
        async with session_maker() as session:
            return await session.get(model, pk)

    return _reload


@pytest.fixture
def transport():
    mock = AsyncMock(spec=HttpNodeTransport)
    mock.create_server.return_value = ServerState(id="", container_id="c0ffee", status="created")
    mock.power.return_value = ServerState(id="", status="running")
    mock.reinstall_server.return_value = ServerState(
        id="", container_id="d00d1e", status="created"
    )
    mock.list_servers.return_value = []
    mock.get_stats.return_value = ServerStats(cpu_percent=12.5, memory_bytes=512 * 1024 * 1024)
    mock.system_info.return_value = SystemInfo(architecture="x86_64", cpu_count=8)
    return mock


@pytest.fixture
def locks() -> ServerLocks:
    return ServerLocks()


@pytest.fixture
def lifecycle(db_session, transport, locks, settings) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(db_session, transport, locks, settings)


@pytest.fixture
def make_node(session_maker):
    """Factory: a node in its own location, with one allocation per port."""

    async def _make(
        memory_total: int = 4096,
        disk_total: int = 100_000,
        cpu_total: int = 400,
        ports=(25565, 25566, 25567),
        **overrides,
    ) -> Node:
        async with session_maker() as session:
            suffix = uuid.uuid4().hex[:8]
            location = Location(short_code=f"eu-{suffix}", name="Frankfurt")
            session.add(location)
            await session.flush()

            token_id, token = generate_daemon_token()
            node = Node(
                name=f"node-{suffix}",
                location_id=location.id,
                fqdn=f"{suffix}.nodes.test",
                scheme="http",
                daemon_token_id=token_id,
                daemon_token=token,
                memory_total=memory_total,
                disk_total=disk_total,
                cpu_total=cpu_total,
                **overrides,
            )
            session.add(node)
            await session.flush()
            session.add_all([Allocation(node_id=node.id, ip=NODE_IP, port=p) for p in ports])
            await session.commit()
            await session.refresh(node)
            return node

    return _make


@pytest_asyncio.fixture
async def node(make_node) -> Node:
    return await make_node()


@pytest.fixture
def make_server(session_maker, transport, locks, settings, node):
    """Factory: create a server through the orchestrator, then force its status."""

    async def _make(status: ServerStatus = ServerStatus.STOPPED, **overrides) -> uuid.UUID:
        fields = {
            "name": "survival",
            "node_id": node.id,
            "docker_image": "ghcr.io/gameplane/minecraft:java17",
            "memory_limit": 1024,
            "disk_limit": 2048,
            "cpu_limit": 100,
        }
        fields.update(overrides)
        async with session_maker() as session:
            orchestrator = LifecycleOrchestrator(session, transport, locks, settings)
            server = await orchestrator.create(ServerCreate(**fields))
            await session.execute(
                update(Server)
                .where(Server.id == server.id)
                .values(status=status.value, suspended=status == ServerStatus.SUSPENDED)
            )
            await session.commit()
            transport.reset_mock()
            return server.id

    return _make


@pytest_asyncio.fixture
async def console():
    pubsub = ConsolePubSub(client=aioredis.FakeRedis(decode_responses=True))
    yield pubsub
    await pubsub.close()


@pytest_asyncio.fixture
async def client(session_maker, transport, locks, console):
    """API client with the database, transport, locks and console overridden."""
    from panel.database import get_async_session
    from panel.dependencies import get_console, get_server_locks, get_transport
    from panel.main import app

    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_transport] = lambda: transport
    app.dependency_overrides[get_server_locks] = lambda: locks
    app.dependency_overrides[get_console] = lambda: console

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
