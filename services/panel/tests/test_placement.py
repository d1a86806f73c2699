"""Tests for capacity reservation and release."""

import uuid

import pytest
from sqlalchemy import func, select

from panel.errors import Conflict, NoAvailableAllocation, ResourceExhausted, ValidationFailed
from panel.models import Allocation, Node, Server
from panel.placement import PlacementEngine
from panel.schemas import ServerCreate


def _request(node_id, memory):
    return ServerCreate(
        name="lobby",
        node_id=node_id,
        docker_image="ghcr.io/gameplane/paper:1.21",
        memory_limit=memory,
        disk_limit=1024,
        cpu_limit=100,
    )


@pytest.mark.asyncio
async def test_second_server_over_memory_is_rejected(lifecycle, make_node, reload, db_session):
    node = await make_node(memory_total=4096, memory_overalloc=0)

    await lifecycle.create(_request(node.id, 2048))
    with pytest.raises(ResourceExhausted):
        await lifecycle.create(_request(node.id, 2049))

    stored = await reload(Node, node.id)
    assert stored.memory_allocated == 2048  # noqa: PLR2004
    servers = await db_session.scalar(select(func.count()).select_from(Server))
    assert servers == 1
    bound = await db_session.scalar(
        select(func.count()).select_from(Allocation).where(Allocation.server_id.is_not(None))
    )
    assert bound == 1


@pytest.mark.asyncio
async def test_reserve_takes_lowest_free_port(db_session, make_node):
    node = await make_node(ports=(27017, 25566, 25565))
    engine = PlacementEngine(db_session)

    first = await engine.reserve(node.id, uuid.uuid4(), 512, 512, 50)
    second = await engine.reserve(node.id, uuid.uuid4(), 512, 512, 50)
    await db_session.commit()

    assert first.port == 25565  # noqa: PLR2004
    assert first.is_primary
    assert second.port == 25566  # noqa: PLR2004


@pytest.mark.asyncio
async def test_reserve_charges_every_dimension(db_session, make_node, reload):
    node = await make_node()

    await PlacementEngine(db_session).reserve(node.id, uuid.uuid4(), 1024, 4096, 150)
    await db_session.commit()

    stored = await reload(Node, node.id)
    assert (stored.memory_allocated, stored.disk_allocated, stored.cpu_allocated) == (
        1024,
        4096,
        150,
    )


@pytest.mark.asyncio
async def test_overallocation_raises_the_ceiling(db_session, make_node):
    node = await make_node(memory_total=1000, memory_overalloc=50)
    engine = PlacementEngine(db_session)

    await engine.reserve(node.id, uuid.uuid4(), 1500, 100, 10)
    with pytest.raises(ResourceExhausted):
        await engine.reserve(node.id, uuid.uuid4(), 1, 100, 10)


@pytest.mark.asyncio
async def test_cpu_is_never_overallocated(db_session, make_node):
    node = await make_node(cpu_total=200, memory_overalloc=100, disk_overalloc=100)

    with pytest.raises(ResourceExhausted):
        await PlacementEngine(db_session).reserve(node.id, uuid.uuid4(), 128, 128, 201)


@pytest.mark.asyncio
async def test_no_free_allocation_leaves_node_untouched(db_session, make_node, reload):
    node = await make_node(ports=())

    with pytest.raises(NoAvailableAllocation):
        await PlacementEngine(db_session).reserve(node.id, uuid.uuid4(), 512, 512, 50)
    await db_session.rollback()

    stored = await reload(Node, node.id)
    assert stored.memory_allocated == 0
    assert stored.cpu_allocated == 0


@pytest.mark.asyncio
async def test_maintenance_node_refuses_placement(db_session, make_node):
    node = await make_node(maintenance_mode=True)

    with pytest.raises(Conflict):
        await PlacementEngine(db_session).reserve(node.id, uuid.uuid4(), 512, 512, 50)


@pytest.mark.asyncio
async def test_non_positive_limits_are_invalid(db_session, make_node):
    node = await make_node()

    with pytest.raises(ValidationFailed):
        await PlacementEngine(db_session).reserve(node.id, uuid.uuid4(), 0, 512, 50)


@pytest.mark.asyncio
async def test_release_returns_capacity_and_frees_allocation(db_session, make_node, reload):
    node = await make_node()
    engine = PlacementEngine(db_session)
    allocation = await engine.reserve(node.id, uuid.uuid4(), 1024, 2048, 100)
    await db_session.commit()

    await engine.release(allocation.id, node.id, 1024, 2048, 100)
    await db_session.commit()

    stored = await reload(Node, node.id)
    assert (stored.memory_allocated, stored.disk_allocated, stored.cpu_allocated) == (0, 0, 0)
    freed = await reload(Allocation, allocation.id)
    assert freed.server_id is None
    assert not freed.is_primary
