import asyncio

import pytest

from vip.core.background import WriteBackPool


@pytest.mark.asyncio
async def test_submitted_work_runs_in_background():
    pool = WriteBackPool()
    written = []

    async def work():
        await asyncio.sleep(0.01)
        written.append("done")

    assert pool.submit("write_modified", work) is True
    assert written == []  # not awaited by the submitter

    assert await pool.drain() is True
    assert written == ["done"]
    assert pool.pending == 0


@pytest.mark.asyncio
async def test_failures_are_absorbed():
    pool = WriteBackPool()

    async def work():
        raise RuntimeError("store unavailable")

    pool.submit("write_modified", work)

    assert await pool.drain() is True
    assert pool.pending == 0


@pytest.mark.asyncio
async def test_full_pool_drops_work():
    pool = WriteBackPool(max_pending=1)
    release = asyncio.Event()

    async def blocked():
        await release.wait()

    assert pool.submit("first", blocked) is True
    assert pool.submit("second", blocked) is False
    assert pool.pending == 1

    release.set()
    await pool.drain()


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    pool = WriteBackPool(max_concurrency=2)
    running = 0
    peak = 0

    async def work():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    for _ in range(6):
        pool.submit("write_modified", work)
    await pool.drain()

    assert peak == 2


@pytest.mark.asyncio
async def test_drain_timeout():
    pool = WriteBackPool()
    release = asyncio.Event()

    async def blocked():
        await release.wait()

    pool.submit("slow", blocked)

    assert await pool.drain(timeout=0.01) is False

    release.set()
    await pool.drain()
