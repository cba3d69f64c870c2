"""Regression tests for the worker pool and timeout helper."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from dod_gate.utils.concurrency import (
    BoundedSemaphore,
    WorkerPool,
    run_in_daemon_thread,
    run_with_timeout,
)


async def _value_after(value: int, delay: float) -> int:
    await asyncio.sleep(delay)
    return value


async def _raise_after(delay: float) -> int:
    await asyncio.sleep(delay)
    raise RuntimeError("worker failed")


async def test_worker_pool_yields_in_completion_order() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=3)

    results = [
        value
        async for value in pool.run(
            [_value_after(1, 0.03), _value_after(2, 0.0), _value_after(3, 0.015)]
        )
    ]

    assert results == [2, 3, 1]
    assert pool.peak_concurrency == 3


async def test_worker_pool_respects_concurrency_limit() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)

    results = [value async for value in pool.run(_value_after(i, 0.005) for i in range(6))]

    assert sorted(results) == list(range(6))
    assert pool.peak_concurrency == 2


async def test_worker_pool_propagates_first_error_and_cancels_rest() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    survivor = asyncio.Event()

    async def long_running() -> int:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            survivor.set()
            raise
        return 0

    with pytest.raises(RuntimeError, match="worker failed"):
        async for _ in pool.run([_raise_after(0.0), long_running()]):
            pass

    assert survivor.is_set()


def test_worker_pool_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        WorkerPool(max_concurrency=0)


async def test_run_with_timeout_returns_value() -> None:
    assert await run_with_timeout(_value_after(7, 0.0), 1.0) == 7


async def test_run_with_timeout_raises_and_cancels() -> None:
    cancelled = asyncio.Event()

    async def slow() -> int:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return 0

    with pytest.raises(TimeoutError, match="timed out"):
        await run_with_timeout(slow(), 0.01)

    assert cancelled.is_set()


async def test_run_with_timeout_rejects_non_positive_budget() -> None:
    coroutine = _value_after(1, 0.0)

    with pytest.raises(ValueError):
        await run_with_timeout(coroutine, 0)

    assert coroutine.cr_frame is None


async def test_bounded_semaphore_tracks_usage() -> None:
    semaphore = BoundedSemaphore(2)

    async with semaphore.permit():
        assert semaphore.in_use == 1
    assert semaphore.in_use == 0
    assert semaphore.peak == 1
    with pytest.raises(RuntimeError):
        semaphore.release()


async def test_daemon_thread_returns_value_and_error() -> None:
    def work(value: int) -> tuple[int, str]:
        return value * 2, threading.current_thread().name

    doubled, thread_name = await run_in_daemon_thread(work, 21, name="dod-check-WORK")

    assert doubled == 42
    assert thread_name == "dod-check-WORK"

    def boom() -> None:
        raise RuntimeError("check crashed")

    with pytest.raises(RuntimeError, match="check crashed"):
        await run_in_daemon_thread(boom)


async def test_daemon_thread_can_be_abandoned_on_timeout() -> None:
    release = threading.Event()
    finished = threading.Event()

    def blocked() -> int:
        release.wait(5)
        finished.set()
        return 1

    with pytest.raises(TimeoutError):
        await run_with_timeout(run_in_daemon_thread(blocked), 0.05)

    release.set()
    assert finished.wait(1)
    # The late result lands on a cancelled future without raising in the loop.
    await asyncio.sleep(0.01)


def test_abandoned_daemon_thread_does_not_block_asyncio_run() -> None:
    release = threading.Event()

    async def main() -> None:
        with pytest.raises(TimeoutError):
            await run_with_timeout(run_in_daemon_thread(release.wait, 5.0), 0.05)

    started = time.perf_counter()
    asyncio.run(main())

    assert time.perf_counter() - started < 2.0
    release.set()
