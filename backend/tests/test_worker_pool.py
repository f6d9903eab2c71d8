import asyncio

import pytest

from engine.worker_pool import WorkerPool


def test_pool_requires_at_least_one_worker():
    with pytest.raises(ValueError):
        WorkerPool(0)


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_max_workers():
    pool = WorkerPool(3)
    running = 0
    peak = 0

    async def work():
        nonlocal running, peak
        async with pool.slot(owner="worker"):
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

    await asyncio.gather(*(work() for _ in range(10)))

    assert peak == 3
    assert pool.in_use == 0
    assert pool.available == 3


@pytest.mark.asyncio
async def test_slot_released_when_block_raises():
    pool = WorkerPool(1)

    with pytest.raises(RuntimeError, match="boom"):
        async with pool.slot():
            assert pool.in_use == 1
            raise RuntimeError("boom")

    assert pool.in_use == 0
    permit = await asyncio.wait_for(pool.acquire(), timeout=1)
    pool.release(permit)


@pytest.mark.asyncio
async def test_cancelled_waiter_takes_no_permit():
    pool = WorkerPool(1)
    held = await pool.acquire(owner="holder")

    waiter = asyncio.create_task(pool.acquire(owner="waiter"))
    await asyncio.sleep(0.01)
    assert pool.waiting == 1

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert pool.waiting == 0
    assert pool.in_use == 1
    pool.release(held)
    assert pool.in_use == 0

    # The permit is still usable by the next caller
    again = await asyncio.wait_for(pool.acquire(), timeout=1)
    pool.release(again)


@pytest.mark.asyncio
async def test_cancelling_holder_releases_permit():
    pool = WorkerPool(1)
    entered = asyncio.Event()

    async def hold_forever():
        async with pool.slot(owner="sleeper"):
            entered.set()
            await asyncio.sleep(3600)

    task = asyncio.create_task(hold_forever())
    await entered.wait()
    assert pool.in_use == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert pool.in_use == 0


@pytest.mark.asyncio
async def test_double_release_is_rejected():
    pool = WorkerPool(2)
    permit = await pool.acquire(owner="once")
    pool.release(permit)

    with pytest.raises(RuntimeError, match="not held"):
        pool.release(permit)
    assert pool.available == 2
