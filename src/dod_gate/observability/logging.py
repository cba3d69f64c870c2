"""Structured logging setup: structlog over stdlib with JSON-lines output and redaction."""

from __future__ import annotations

import json
import logging
import math
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOGGER_NAME: Final[str] = "dod_gate"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b(\s*[:=]\s*)(?!bearer\b)([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: int | str = "INFO"
    log_path: Path | str | None = None
    log_to_stream: bool = True
    stream: IO[str] | None = None
    logger_name: str = _DEFAULT_LOGGER_NAME
    redact: bool = True


class _JsonLineFormatter(logging.Formatter):
    """Emit one canonical JSON object per record."""

    def __init__(self, *, redact: bool) -> None:
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": self._clean(record.getMessage()),
        }
        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = self._clean(extras)
        if record.exc_info is not None:
            event["exception"] = self._clean(self.formatException(record.exc_info))
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def _clean(self, value: object) -> JSONValue:
        normalized = _normalize_json_value(value)
        if not self._redact:
            return normalized
        return redact_value(normalized)


class LoggingHandle:
    """Handlers installed by ``configure_logging``; ``close`` detaches them."""

    def __init__(self, *, logger: logging.Logger, handlers: tuple[logging.Handler, ...]) -> None:
        self.logger = logger
        self._handlers = handlers

    @property
    def handlers(self) -> tuple[logging.Handler, ...]:
        return self._handlers

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def close(self) -> None:
        for handler in self._handlers:
            handler.flush()
            self.logger.removeHandler(handler)
            handler.close()


def configure_logging(config: LoggingConfig | None = None) -> LoggingHandle:
    """Route structlog through stdlib logging and attach JSON-lines sinks.

    Replaces any handlers previously attached to ``config.logger_name``.
    """

    cfg = config or LoggingConfig()
    level = _parse_log_level(cfg.level)
    formatter = _JsonLineFormatter(redact=cfg.redact)

    handlers: list[logging.Handler] = []
    if cfg.log_path is not None:
        log_path = Path(cfg.log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if cfg.log_to_stream:
        handlers.append(logging.StreamHandler(cfg.stream or sys.stderr))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logger = logging.getLogger(cfg.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return LoggingHandle(logger=logger, handlers=tuple(handlers))


def redact_value(value: JSONValue, *, key_context: str | None = None) -> JSONValue:
    """Deep-redact secret-looking keys and inline credentials."""

    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, list):
        return [redact_value(item) for item in value]
    if isinstance(value, dict):
        return {key: redact_value(item, key_context=key) for key, item in value.items()}
    return value


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, object]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_LOG_RECORD_FIELDS and not key.startswith("_")
    }


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize_json_value(item) for item in value]
    return repr(value)


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _redact_string(text: str) -> str:
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", text)
    return _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", redacted
    )


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "LoggingHandle",
    "configure_logging",
    "redact_value",
]
