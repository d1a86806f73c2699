import asyncio

import pytest

from shared.tasks import run_periodic_task


@pytest.mark.asyncio
async def test_failing_iteration_does_not_stop_the_loop():
    calls = []
    done = asyncio.Event()

    async def tick():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("node unreachable")
        if len(calls) >= 3:  # noqa: PLR2004
            done.set()

    task = asyncio.create_task(run_periodic_task(tick, interval=0, name="status_sync"))
    await asyncio.wait_for(done.wait(), timeout=1)
    task.cancel()
    await task

    assert len(calls) >= 3  # noqa: PLR2004


@pytest.mark.asyncio
async def test_cancellation_ends_the_loop_quietly():
    started = asyncio.Event()

    async def tick():
        started.set()

    task = asyncio.create_task(run_periodic_task(tick, interval=60, name="health"))
    await started.wait()
    task.cancel()

    await asyncio.wait_for(task, timeout=1)
    assert task.done()
    assert not task.cancelled()
