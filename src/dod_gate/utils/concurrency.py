"""Async concurrency primitives for bounded, timeout-isolated check execution."""

from __future__ import annotations

import asyncio
import inspect
import threading
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

T = TypeVar("T")


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run awaitables with bounded concurrency and yield results as they finish."""

    max_concurrency: int
    _semaphore: BoundedSemaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._semaphore = BoundedSemaphore(self.max_concurrency)

    @property
    def peak_concurrency(self) -> int:
        return self._semaphore.peak

    async def run(self, awaitables: Iterable[Awaitable[T]]) -> AsyncIterator[T]:
        tasks: set[asyncio.Task[T]] = {
            asyncio.create_task(self._run_one(awaitable)) for awaitable in awaitables
        }

        try:
            while tasks:
                done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                tasks = set(pending)

                for task in done:
                    if task.cancelled():
                        raise asyncio.CancelledError("worker task cancelled")
                    exc = task.exception()
                    if exc is not None:
                        await _cancel_all(tasks)
                        raise exc
                    yield task.result()
        except asyncio.CancelledError:
            await _cancel_all(tasks)
            raise

    async def _run_one(self, awaitable: Awaitable[T]) -> T:
        async with self._semaphore.permit():
            return await awaitable


async def run_with_timeout(awaitable: Awaitable[T], timeout_seconds: float) -> T:
    """Await ``awaitable`` for at most ``timeout_seconds``.

    Raises ``TimeoutError`` once the budget is spent; the underlying task is
    cancelled and awaited so it cannot outlive the call.
    """
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(awaitable)
        raise ValueError("timeout_seconds must be > 0")

    task: asyncio.Task[T] = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()

    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")


async def run_in_daemon_thread(
    func: Callable[..., T],
    *args: object,
    name: str = "dod-gate-worker",
) -> T:
    """Call ``func(*args)`` on a fresh daemon thread and await its result.

    The thread is owned by nobody: cancelling the awaiting task abandons it,
    and neither the event loop's default executor nor interpreter shutdown
    waits for it to finish.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[T] = loop.create_future()

    def settle(value: object, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)  # type: ignore[arg-type]

    def runner() -> None:
        value: object = None
        error: BaseException | None = None
        try:
            value = func(*args)
        except BaseException as exc:  # noqa: BLE001
            error = exc
        # The loop may already be closed when an abandoned call finishes.
        with suppress(RuntimeError):
            loop.call_soon_threadsafe(settle, value, error)

    threading.Thread(target=runner, name=name, daemon=True).start()
    return await future


async def _cancel_all(tasks: set[asyncio.Task[T]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects rejected before scheduling so CPython does
    # not emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "BoundedSemaphore",
    "WorkerPool",
    "run_in_daemon_thread",
    "run_with_timeout",
]
