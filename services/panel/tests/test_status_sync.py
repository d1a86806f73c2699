"""Tests for status reconciliation against node-reported container states."""

import pytest

from panel.errors import RemoteFailure
from panel.models import Node, Server, ServerStatus
from panel.tasks import status_from_container_state, sync_all_nodes, sync_node
from shared.contracts import ServerState

S = ServerStatus


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        ("running", S.RUNNING),
        ("restarting", S.RESTARTING),
        ("exited", S.STOPPED),
        ("created", S.STOPPED),
        ("dead", S.STOPPED),
        ("paused", None),
        ("missing", None),
    ],
)
def test_status_from_container_state(state, expected):
    assert status_from_container_state(state) is expected


async def _sync(db_session, transport, locks, node_id):
    node = await db_session.get(Node, node_id)
    return await sync_node(db_session, transport, locks, node)


@pytest.mark.asyncio
async def test_observed_state_overwrites_cached_status(
    db_session, transport, locks, node, make_server, reload
):
    starting = await make_server(S.STARTING)
    crashed = await make_server(S.RUNNING)
    transport.list_servers.return_value = [
        ServerState(id=str(starting), status="running"),
        ServerState(id=str(crashed), status="exited"),
    ]

    updated = await _sync(db_session, transport, locks, node.id)

    assert updated == 2  # noqa: PLR2004
    assert (await reload(Server, starting)).status == S.RUNNING.value
    assert (await reload(Server, crashed)).status == S.STOPPED.value
    stored = await reload(Node, node.id)
    assert stored.is_online
    assert stored.last_checked_at is not None


@pytest.mark.asyncio
async def test_error_state_recovers_when_container_runs(
    db_session, transport, locks, node, make_server, reload
):
    server_id = await make_server(S.ERROR)
    transport.list_servers.return_value = [ServerState(id=str(server_id), status="running")]

    await _sync(db_session, transport, locks, node.id)

    assert (await reload(Server, server_id)).status == S.RUNNING.value


@pytest.mark.asyncio
async def test_explicit_states_are_left_alone(
    db_session, transport, locks, node, make_server, reload
):
    installing = await make_server(S.INSTALLING)
    suspended = await make_server(S.SUSPENDED)
    transport.list_servers.return_value = [
        ServerState(id=str(installing), status="exited"),
        ServerState(id=str(suspended), status="running"),
    ]

    updated = await _sync(db_session, transport, locks, node.id)

    assert updated == 0
    assert (await reload(Server, installing)).status == S.INSTALLING.value
    assert (await reload(Server, suspended)).status == S.SUSPENDED.value


@pytest.mark.asyncio
async def test_servers_with_operation_in_flight_are_skipped(
    db_session, transport, locks, node, make_server, reload
):
    server_id = await make_server(S.STARTING)
    transport.list_servers.return_value = [ServerState(id=str(server_id), status="exited")]

    async with locks.hold(server_id):
        updated = await _sync(db_session, transport, locks, node.id)

    assert updated == 0
    assert (await reload(Server, server_id)).status == S.STARTING.value


@pytest.mark.asyncio
async def test_unreported_server_keeps_status(
    db_session, transport, locks, node, make_server, reload
):
    server_id = await make_server(S.RUNNING)
    transport.list_servers.return_value = []

    await _sync(db_session, transport, locks, node.id)

    assert (await reload(Server, server_id)).status == S.RUNNING.value


@pytest.mark.asyncio
async def test_unreachable_node_goes_offline(db_session, transport, locks, node, reload):
    transport.list_servers.side_effect = RemoteFailure("Node unreachable: ConnectError")

    updated = await _sync(db_session, transport, locks, node.id)

    assert updated == 0
    assert not (await reload(Node, node.id)).is_online


@pytest.mark.asyncio
async def test_full_pass_continues_after_node_failure(
    session_maker, transport, locks, make_node, make_server, node, reload
):
    healthy_id = await make_server(S.STARTING)
    broken = await make_node()
    deleting_id = await make_server(S.DELETING)

    async def list_servers(target):
        if target.id == broken.id:
            raise RuntimeError("unexpected payload")
        return [ServerState(id=str(healthy_id), status="running")]

    transport.list_servers.side_effect = list_servers

    await sync_all_nodes(session_maker, transport, locks)

    assert (await reload(Server, healthy_id)).status == S.RUNNING.value
    # Interrupted deletes are finished in the same pass
    assert await reload(Server, deleting_id) is None


@pytest.mark.asyncio
async def test_maintenance_nodes_are_not_polled(session_maker, transport, locks, make_node):
    await make_node(maintenance_mode=True)

    await sync_all_nodes(session_maker, transport, locks)

    transport.list_servers.assert_not_awaited()
