"""Console pub/sub against fakeredis."""

import asyncio

from fakeredis import aioredis
import pytest
import pytest_asyncio

from shared.redis import ConsolePubSub, input_topic, output_topic


@pytest_asyncio.fixture
async def console():
    client = aioredis.FakeRedis(decode_responses=True)
    pubsub = ConsolePubSub(client=client)
    yield pubsub
    await pubsub.close()


def test_topics():
    assert input_topic("abc") == "console:abc:input"
    assert output_topic("abc") == "console:abc:output"


def test_requires_url(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    with pytest.raises(RuntimeError):
        ConsolePubSub()


@pytest.mark.asyncio
async def test_output_fans_out_to_every_viewer(console):
    async with console.subscribe_output("srv1") as first, console.subscribe_output("srv1") as second:
        receivers = await console.publish_output("srv1", "Done (3.2s)! For help, type help")

        assert receivers == 2  # noqa: PLR2004
        got_first = await first.get(timeout=1.0)
        got_second = await second.get(timeout=1.0)

    assert got_first.data == got_second.data == "Done (3.2s)! For help, type help"
    assert got_first.server_id == "srv1"


@pytest.mark.asyncio
async def test_viewer_disconnect_leaves_others_subscribed(console):
    async with console.subscribe_output("srv1") as staying:
        async with console.subscribe_output("srv1"):
            pass

        receivers = await console.publish_output("srv1", "tick")

        assert receivers == 1
        message = await staying.get(timeout=1.0)
        assert message.data == "tick"


@pytest.mark.asyncio
async def test_output_is_scoped_per_server(console):
    async with console.subscribe_output("srv1") as viewer:
        await console.publish_output("srv2", "not for srv1")

        assert await viewer.get(timeout=0.1) is None


@pytest.mark.asyncio
async def test_input_pattern_subscription(console):
    async with console.subscribe_inputs() as inputs:
        await console.publish_input("srv7", "say hello")

        message = await inputs.get(timeout=1.0)

    assert message.server_id == "srv7"
    assert message.data == "say hello"


@pytest.mark.asyncio
async def test_input_without_listener_is_dropped(console):
    assert await console.publish_input("srv1", "stop") == 0


@pytest.mark.asyncio
async def test_first_get_skips_subscribe_confirmation(console):
    async with console.subscribe_output("srv1") as viewer:
        await console.publish_output("srv1", "already waiting")

        message = await viewer.get(timeout=1.0)

    assert message is not None
    assert message.data == "already waiting"


@pytest.mark.asyncio
async def test_iteration_stops_promptly_on_cancel(console):
    received = []

    async def consume():
        async with console.subscribe_inputs() as inputs:
            async for message in inputs:
                received.append(message.data)

    task = asyncio.create_task(consume())
    for _ in range(100):
        await console.publish_input("srv1", "list")
        if received:
            break
        await asyncio.sleep(0.01)

    task.cancel()
    await asyncio.wait_for(asyncio.gather(task, return_exceptions=True), timeout=2)

    assert received[0] == "list"
    assert task.cancelled()
