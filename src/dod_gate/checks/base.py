"""
dod-gate — check contract and registry

Purpose
- Defines the pluggable check interface, its invocation context, and the
  id-keyed registry the executor resolves profiles against.

Functional requirements
- ``register`` is last-write-wins; a replaced id keeps its registration slot.
- Category lookups return checks in registration order.
- A frozen registry rejects further registration for the rest of the run.

Non-functional requirements
- Checks may be synchronous or asynchronous; the executor normalizes both.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

import structlog

from dod_gate.constants import DEFAULT_CONTEXT_TIMEOUT_MS
from dod_gate.domain.models import (
    CheckCategory,
    CheckSeverity,
    CheckStatus,
    DodCheckResult,
    Evidence,
    ValidationMode,
)
from dod_gate.errors import UnknownCheckError

CHECK_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Z][A-Z0-9_]*$")

CheckOutcome = DodCheckResult | Awaitable[DodCheckResult]


def is_valid_check_id(value: object) -> bool:
    return isinstance(value, str) and CHECK_ID_PATTERN.fullmatch(value) is not None


@dataclass(frozen=True, slots=True)
class CheckContext:
    """Immutable execution input handed to every check."""

    workspace_root: Path
    mode: ValidationMode = ValidationMode.FAST
    timeout_ms: int = DEFAULT_CONTEXT_TIMEOUT_MS
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "workspace_root", Path(self.workspace_root))
        object.__setattr__(self, "mode", ValidationMode(self.mode))
        if isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, int):
            raise ValueError("CheckContext.timeout_ms: expected integer")
        if self.timeout_ms <= 0:
            raise ValueError("CheckContext.timeout_ms: must be > 0")
        object.__setattr__(self, "metadata", dict(self.metadata))

    def with_timeout(self, timeout_ms: int) -> CheckContext:
        return replace(self, timeout_ms=timeout_ms)

    def with_metadata(self, key: str, value: str) -> CheckContext:
        return replace(self, metadata={**self.metadata, key: value})


@runtime_checkable
class DodCheck(Protocol):
    """Check protocol implemented by built-in and third-party checks.

    ``execute`` may return a result directly or an awaitable of one. Checks
    may additionally define ``skip_in_profile(profile_name) -> bool``.
    """

    @property
    def id(self) -> str: ...

    @property
    def category(self) -> CheckCategory: ...

    @property
    def severity(self) -> CheckSeverity: ...

    @property
    def description(self) -> str: ...

    @property
    def dependencies(self) -> Sequence[str]: ...

    def execute(self, context: CheckContext) -> CheckOutcome: ...


def build_result(
    check: DodCheck,
    status: CheckStatus,
    message: str,
    *,
    evidence: Sequence[Evidence] = (),
    remediation: Sequence[str] = (),
    duration_ms: int = 0,
) -> DodCheckResult:
    """Build a result stamped with ``check``'s id, category and severity."""

    return DodCheckResult(
        id=check.id,
        category=check.category,
        status=status,
        severity=check.severity,
        message=message,
        evidence=tuple(evidence),
        remediation=tuple(remediation),
        duration_ms=duration_ms,
    )


def should_skip(check: DodCheck, profile_name: str) -> bool:
    hook = getattr(check, "skip_in_profile", None)
    if hook is None:
        return False
    return bool(hook(profile_name))


@dataclass(frozen=True, slots=True)
class FunctionCheck:
    """Adapt a plain callable into a ``DodCheck``.

    The callable receives the context and returns a ``DodCheckResult`` (or an
    awaitable of one).
    """

    id: str
    category: CheckCategory
    severity: CheckSeverity
    run: Callable[[CheckContext], CheckOutcome]
    description: str = ""
    dependencies: tuple[str, ...] = ()
    skipped_profiles: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not is_valid_check_id(self.id):
            raise ValueError(f"FunctionCheck.id: {self.id!r} is not a well-formed check id")
        object.__setattr__(self, "category", CheckCategory(self.category))
        object.__setattr__(self, "severity", CheckSeverity(self.severity))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "skipped_profiles", frozenset(self.skipped_profiles))

    def execute(self, context: CheckContext) -> CheckOutcome:
        return self.run(context)

    def skip_in_profile(self, profile_name: str) -> bool:
        return profile_name in self.skipped_profiles


class CheckRegistry:
    """Ordered id→check registry."""

    def __init__(self, checks: Sequence[DodCheck] = ()) -> None:
        self._checks: dict[str, DodCheck] = {}
        self._frozen = False
        self._logger = structlog.get_logger(__name__)
        for check in checks:
            self.register(check)

    def register(self, check: DodCheck) -> None:
        if self._frozen:
            raise RuntimeError("check registry is frozen; register checks before a run starts")
        if not isinstance(check, DodCheck):
            raise TypeError(f"{type(check).__name__} does not implement the DodCheck protocol")
        check_id = check.id
        if not is_valid_check_id(check_id):
            raise ValueError(f"check id {check_id!r} must match {CHECK_ID_PATTERN.pattern}")
        if check_id in self._checks:
            self._logger.debug("check_replaced", check_id=check_id)
        self._checks[check_id] = check

    def freeze(self) -> None:
        self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def get(self, check_id: str) -> DodCheck | None:
        return self._checks.get(check_id)

    def require(self, check_id: str) -> DodCheck:
        check = self._checks.get(check_id)
        if check is None:
            raise UnknownCheckError(check_id)
        return check

    def get_by_category(self, category: CheckCategory) -> list[DodCheck]:
        return [check for check in self._checks.values() if check.category is category]

    def ids(self) -> tuple[str, ...]:
        return tuple(self._checks)

    def all(self) -> tuple[DodCheck, ...]:
        return tuple(self._checks.values())

    def position(self, check_id: str) -> int:
        return self.ids().index(check_id)

    def __contains__(self, check_id: object) -> bool:
        return check_id in self._checks

    def __len__(self) -> int:
        return len(self._checks)

    def __iter__(self) -> Iterator[DodCheck]:
        return iter(tuple(self._checks.values()))


__all__ = [
    "CHECK_ID_PATTERN",
    "CheckContext",
    "CheckOutcome",
    "CheckRegistry",
    "DodCheck",
    "FunctionCheck",
    "build_result",
    "is_valid_check_id",
    "should_skip",
]
