"""Public observability primitives: structured logging and executor event streaming."""

from dod_gate.observability.events import (
    DispatchError,
    EventBus,
    ExecutorEvent,
    ExecutorEventType,
    Subscriber,
)
from dod_gate.observability.logging import (
    LoggingConfig,
    LoggingHandle,
    configure_logging,
    redact_value,
)

__all__ = [
    "DispatchError",
    "EventBus",
    "ExecutorEvent",
    "ExecutorEventType",
    "LoggingConfig",
    "LoggingHandle",
    "Subscriber",
    "configure_logging",
    "redact_value",
]
