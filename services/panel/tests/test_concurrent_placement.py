"""Concurrent reservations against one node.

SQLite has no row locks, so this module's engine opens every transaction
with BEGIN IMMEDIATE: writers then serialize the way SELECT ... FOR UPDATE
serializes them on PostgreSQL.
"""

import asyncio
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from panel.errors import ResourceExhausted
from panel.lifecycle import LifecycleOrchestrator
from panel.models import Base, Node, Server
from panel.placement import PlacementEngine
from panel.schemas import ServerCreate


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'panel.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _driver_autocommit(dbapi_connection, connection_record):
        # Stop the driver from issuing its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


def _request(node_id, memory):
    return ServerCreate(
        name="arena",
        node_id=node_id,
        docker_image="ghcr.io/gameplane/paper:1.21",
        memory_limit=memory,
        disk_limit=1024,
        cpu_limit=100,
    )


@pytest.mark.asyncio
async def test_concurrent_creates_never_overcommit(
    session_maker, make_node, transport, locks, settings, reload
):
    node = await make_node(memory_total=4096, memory_overalloc=0)

    async def create(memory):
        async with session_maker() as session:
            orchestrator = LifecycleOrchestrator(session, transport, locks, settings)
            return await orchestrator.create(_request(node.id, memory))

    results = await asyncio.gather(create(3072), create(2048), return_exceptions=True)

    created = [r for r in results if isinstance(r, Server)]
    rejected = [r for r in results if isinstance(r, ResourceExhausted)]
    assert len(created) == 1
    assert len(rejected) == 1
    stored = await reload(Node, node.id)
    assert stored.memory_allocated == created[0].memory_limit
    assert stored.memory_allocated <= stored.memory_total


@pytest.mark.asyncio
async def test_concurrent_reservations_fill_node_exactly(session_maker, make_node, reload):
    node = await make_node(memory_total=4096, memory_overalloc=0)

    async def reserve():
        async with session_maker() as session:
            allocation = await PlacementEngine(session).reserve(
                node.id, uuid.uuid4(), 2048, 1024, 100
            )
            await session.commit()
            return allocation

    results = await asyncio.gather(reserve(), reserve(), reserve(), return_exceptions=True)

    reserved = [r for r in results if not isinstance(r, Exception)]
    assert len(reserved) == 2  # noqa: PLR2004
    assert sum(isinstance(r, ResourceExhausted) for r in results) == 1
    assert len({a.port for a in reserved}) == 2  # noqa: PLR2004
    stored = await reload(Node, node.id)
    assert stored.memory_allocated == 4096  # noqa: PLR2004
