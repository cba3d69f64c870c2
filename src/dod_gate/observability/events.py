"""In-process event bus for executor progress with bounded history."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

_DEFAULT_HISTORY_SIZE: Final[int] = 512
_DEFAULT_ERROR_BUFFER: Final[int] = 256


class ExecutorEventType(StrEnum):
    RUN_STARTED = "run_started"
    WAVE_STARTED = "wave_started"
    CHECK_STARTED = "check_started"
    CHECK_FINISHED = "check_finished"
    CHECK_SKIPPED = "check_skipped"
    CHECK_TIMED_OUT = "check_timed_out"
    RUN_FINISHED = "run_finished"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class ExecutorEvent:
    type: ExecutorEventType
    check_id: str | None = None
    payload: Mapping[str, object] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ExecutorEventType(self.type))
        object.__setattr__(self, "payload", dict(self.payload))


Subscriber = Callable[[ExecutorEvent], object]


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting the publisher."""

    event_type: ExecutorEventType
    check_id: str | None
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    event_type: ExecutorEventType | None
    callback: Subscriber


class EventBus:
    """Sync and async subscribers; a failing subscriber never breaks a run."""

    def __init__(self, *, history_size: int = _DEFAULT_HISTORY_SIZE) -> None:
        if not isinstance(history_size, int) or isinstance(history_size, bool):
            raise ValueError(f"history_size must be an integer, got {type(history_size).__name__}")
        if history_size <= 0:
            raise ValueError("history_size must be > 0")
        self._history = deque[ExecutorEvent](maxlen=history_size)
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._subscriptions: dict[int, _Subscription] = {}
        self._next_token = 1
        self._lock = threading.RLock()

    def subscribe(
        self, event_type: ExecutorEventType | str | None, callback: Subscriber
    ) -> int:
        """Subscribe to one event type, or to every event when ``event_type`` is ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = None if event_type is None else ExecutorEventType(event_type)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(
                token=token, event_type=normalized, callback=callback
            )
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def publish(self, event: ExecutorEvent) -> tuple[DispatchError, ...]:
        """Publish from synchronous code.

        Awaitables returned by subscribers are run to completion when no loop is
        running, and scheduled on the running loop otherwise.
        """

        subscriptions = self._record(event)
        errors: list[DispatchError] = []
        running_loop = _current_running_loop()
        for subscription in subscriptions:
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    if running_loop is None:
                        asyncio.run(_await(result))
                    else:
                        task = running_loop.create_task(_await(result))
                        task.add_done_callback(
                            lambda done, target=subscription.callback: self._on_task_done(
                                done, event=event, target=target
                            )
                        )
            except Exception as exc:  # noqa: BLE001
                errors.append(_dispatch_error(event, subscription.callback, exc))
        self._store_errors(errors)
        return tuple(errors)

    async def publish_async(self, event: ExecutorEvent) -> tuple[DispatchError, ...]:
        """Publish from async code, awaiting async subscribers in subscription order."""

        subscriptions = self._record(event)
        errors: list[DispatchError] = []
        for subscription in subscriptions:
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                errors.append(_dispatch_error(event, subscription.callback, exc))
        self._store_errors(errors)
        return tuple(errors)

    def history(
        self,
        *,
        event_type: ExecutorEventType | str | None = None,
        limit: int | None = None,
    ) -> tuple[ExecutorEvent, ...]:
        """Buffered events in publish order, optionally filtered and truncated to the newest."""

        type_filter = None if event_type is None else ExecutorEventType(event_type)
        with self._lock:
            events = tuple(self._history)
        filtered = [event for event in events if type_filter is None or event.type is type_filter]
        if limit is not None:
            if limit <= 0:
                return ()
            filtered = filtered[-limit:]
        return tuple(filtered)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)

    def _record(self, event: ExecutorEvent) -> tuple[_Subscription, ...]:
        if not isinstance(event, ExecutorEvent):
            raise ValueError(f"event must be ExecutorEvent, got {type(event).__name__}")
        with self._lock:
            self._history.append(event)
            return tuple(
                subscription
                for subscription in self._subscriptions.values()
                if subscription.event_type is None or subscription.event_type is event.type
            )

    def _store_errors(self, errors: list[DispatchError]) -> None:
        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)

    def _on_task_done(
        self, task: asyncio.Task[None], *, event: ExecutorEvent, target: Subscriber
    ) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, Exception):
            self._store_errors([_dispatch_error(event, target, exc)])


async def _await(awaitable: object) -> None:
    await awaitable  # type: ignore[misc]


def _current_running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def _dispatch_error(event: ExecutorEvent, callback: object, exc: Exception) -> DispatchError:
    return DispatchError(
        event_type=event.type,
        check_id=event.check_id,
        target=_callback_name(callback),
        error_type=exc.__class__.__name__,
        message=str(exc),
    )


__all__ = [
    "DispatchError",
    "EventBus",
    "ExecutorEvent",
    "ExecutorEventType",
    "Subscriber",
]
