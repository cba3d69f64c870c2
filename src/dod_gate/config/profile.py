"""
dod-gate — validation profiles

Purpose
- Define the profile schema (check selection, category weights, thresholds,
  per-category timeouts, parallelism) and its validation rules.
- Provide the two canonical built-in profiles as plain instances.

Functional requirements
- ``validate`` reports every violated invariant with a dotted field path,
  not just the first.
- ``from_dict`` accepts the on-disk schema and ``to_dict`` reproduces it.

Non-functional requirements
- Profiles are immutable once constructed and safe to share across tasks.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final, TypeVar

import psutil

from dod_gate.checks.base import is_valid_check_id
from dod_gate.constants import WEIGHT_SUM_TOLERANCE
from dod_gate.domain.models import CheckCategory
from dod_gate.errors import ProfileValidationError, ProfileValidationIssue

TEnum = TypeVar("TEnum", bound=StrEnum)

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_PROFILE_KEYS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "description",
        "required_checks",
        "optional_checks",
        "category_weights",
        "parallelism",
        "timeouts_ms",
        "thresholds",
    }
)


class ParallelismMode(StrEnum):
    SERIAL = "serial"
    AUTO = "auto"
    FIXED = "fixed"


@dataclass(frozen=True, slots=True)
class Parallelism:
    mode: ParallelismMode = ParallelismMode.AUTO
    workers: int | None = None

    @classmethod
    def serial(cls) -> Parallelism:
        return cls(ParallelismMode.SERIAL)

    @classmethod
    def auto(cls) -> Parallelism:
        return cls(ParallelismMode.AUTO)

    @classmethod
    def fixed(cls, workers: int) -> Parallelism:
        return cls(ParallelismMode.FIXED, workers)

    def worker_count(self) -> int:
        """Concurrency budget for one wave."""

        if self.mode is ParallelismMode.SERIAL:
            return 1
        if self.mode is ParallelismMode.FIXED:
            return max(1, self.workers or 1)
        return max(1, psutil.cpu_count(logical=True) or 1)

    def to_dict(self) -> dict[str, object]:
        if self.mode is ParallelismMode.FIXED:
            return {"mode": self.mode.value, "workers": self.workers}
        return {"mode": self.mode.value}


@dataclass(frozen=True, slots=True)
class ThresholdConfig:
    min_readiness_score: float = 70.0
    max_warnings: int = 20
    require_all_tests_pass: bool = False
    fail_on_clippy_warnings: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "min_readiness_score": self.min_readiness_score,
            "max_warnings": self.max_warnings,
            "require_all_tests_pass": self.require_all_tests_pass,
            "fail_on_clippy_warnings": self.fail_on_clippy_warnings,
        }


@dataclass(frozen=True, slots=True)
class TimeoutConfig:
    """Per-category timeout buckets in milliseconds."""

    build: int = 600_000
    tests: int = 900_000
    ggen: int = 300_000
    default: int = 60_000

    def for_category(self, category: CheckCategory) -> int:
        if category is CheckCategory.BUILD_CORRECTNESS:
            return self.build
        if category is CheckCategory.TEST_TRUTH:
            return self.tests
        if category is CheckCategory.GGEN_PIPELINE:
            return self.ggen
        return self.default

    def to_dict(self) -> dict[str, int]:
        return {
            "build": self.build,
            "tests": self.tests,
            "ggen": self.ggen,
            "default": self.default,
        }


@dataclass(frozen=True, slots=True)
class DodProfile:
    """Externally authored run configuration; validate before use."""

    name: str
    description: str = ""
    required_checks: tuple[str, ...] = ()
    optional_checks: tuple[str, ...] = ()
    category_weights: Mapping[CheckCategory, float] = field(default_factory=dict)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    timeouts_ms: TimeoutConfig = field(default_factory=TimeoutConfig)
    parallelism: Parallelism = field(default_factory=Parallelism)

    def __post_init__(self) -> None:
        object.__setattr__(self, "required_checks", tuple(self.required_checks))
        object.__setattr__(self, "optional_checks", tuple(self.optional_checks))
        object.__setattr__(self, "category_weights", dict(self.category_weights))

    def enabled_check_ids(self) -> frozenset[str]:
        return frozenset(self.required_checks) | frozenset(self.optional_checks)

    def weight_for(self, category: CheckCategory) -> float:
        return float(self.category_weights.get(category, 0.0))

    def timeout_for(self, category: CheckCategory) -> int:
        return self.timeouts_ms.for_category(category)

    def validate(self) -> list[ProfileValidationIssue]:
        """Return every violated invariant; an empty list means the profile is usable."""

        issues = _IssueCollector()

        if not isinstance(self.name, str) or not self.name.strip():
            issues.add("name", "must be a non-empty string")

        total_weight = 0.0
        for category, weight in self.category_weights.items():
            path = f"category_weights.{getattr(category, 'value', category)}"
            if not isinstance(category, CheckCategory):
                issues.add(path, "unknown category")
            if isinstance(weight, bool) or not isinstance(weight, (int, float)):
                issues.add(path, "must be a number")
                continue
            if not math.isfinite(weight) or weight < 0.0 or weight > 1.0:
                issues.add(path, "must be within [0.0, 1.0]")
            total_weight += float(weight)
        if abs(total_weight - 1.0) > WEIGHT_SUM_TOLERANCE:
            issues.add(
                "category_weights",
                f"weights must sum to 1.0 (+/- {WEIGHT_SUM_TOLERANCE}), got {total_weight:.4f}",
            )

        seen: set[str] = set()
        for list_name in ("required_checks", "optional_checks"):
            for index, check_id in enumerate(getattr(self, list_name)):
                path = f"{list_name}[{index}]"
                if not is_valid_check_id(check_id):
                    issues.add(path, f"malformed check id {check_id!r}")
                    continue
                if check_id in seen:
                    issues.add(path, f"duplicate check id {check_id!r}")
                seen.add(check_id)

        thresholds = self.thresholds
        score = thresholds.min_readiness_score
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            issues.add("thresholds.min_readiness_score", "must be a number")
        elif not math.isfinite(score) or score < 0.0 or score > 100.0:
            issues.add("thresholds.min_readiness_score", "must be within [0, 100]")
        if isinstance(thresholds.max_warnings, bool) or not isinstance(
            thresholds.max_warnings, int
        ):
            issues.add("thresholds.max_warnings", "must be an integer")
        elif thresholds.max_warnings < 0:
            issues.add("thresholds.max_warnings", "must be >= 0")

        for bucket, value in self.timeouts_ms.to_dict().items():
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                issues.add(f"timeouts_ms.{bucket}", "must be a positive integer")

        parallelism = self.parallelism
        if parallelism.mode is ParallelismMode.FIXED:
            workers = parallelism.workers
            if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
                issues.add("parallelism.workers", "fixed parallelism requires workers >= 1")

        return list(issues.items())

    def assert_valid(self) -> DodProfile:
        issues = self.validate()
        if issues:
            raise ProfileValidationError(issues)
        return self

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "required_checks": list(self.required_checks),
            "optional_checks": list(self.optional_checks),
            "category_weights": {
                category.value: weight
                for category, weight in self.category_weights.items()
            },
            "parallelism": self.parallelism.to_dict(),
            "timeouts_ms": self.timeouts_ms.to_dict(),
            "thresholds": self.thresholds.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DodProfile:
        """Parse the on-disk schema; raises ``ProfileValidationError`` on shape errors."""

        issues = _IssueCollector()
        if not isinstance(data, Mapping):
            issues.add("<root>", f"expected object, got {type(data).__name__}")
            raise ProfileValidationError(issues.items())

        for key in sorted(str(item) for item in data if item not in _PROFILE_KEYS):
            issues.add(key, "unknown field")

        name = _as_str(data.get("name"), "name", issues)
        description = _as_str(data.get("description", ""), "description", issues, allow_empty=True)
        required = _as_str_tuple(data.get("required_checks", ()), "required_checks", issues)
        optional = _as_str_tuple(data.get("optional_checks", ()), "optional_checks", issues)
        weights = _parse_weights(data.get("category_weights", {}), issues)
        parallelism = _parse_parallelism(data.get("parallelism", "auto"), issues)

        timeouts_raw = _as_mapping(data.get("timeouts_ms", {}), "timeouts_ms", issues)
        defaults = TimeoutConfig()
        timeouts = TimeoutConfig(
            build=_as_int(timeouts_raw.get("build", defaults.build), "timeouts_ms.build", issues),
            tests=_as_int(timeouts_raw.get("tests", defaults.tests), "timeouts_ms.tests", issues),
            ggen=_as_int(timeouts_raw.get("ggen", defaults.ggen), "timeouts_ms.ggen", issues),
            default=_as_int(
                timeouts_raw.get("default", defaults.default), "timeouts_ms.default", issues
            ),
        )

        thresholds_raw = _as_mapping(data.get("thresholds", {}), "thresholds", issues)
        threshold_defaults = ThresholdConfig()
        thresholds = ThresholdConfig(
            min_readiness_score=_as_float(
                thresholds_raw.get("min_readiness_score", threshold_defaults.min_readiness_score),
                "thresholds.min_readiness_score",
                issues,
            ),
            max_warnings=_as_int(
                thresholds_raw.get("max_warnings", threshold_defaults.max_warnings),
                "thresholds.max_warnings",
                issues,
            ),
            require_all_tests_pass=_as_bool(
                thresholds_raw.get(
                    "require_all_tests_pass", threshold_defaults.require_all_tests_pass
                ),
                "thresholds.require_all_tests_pass",
                issues,
            ),
            fail_on_clippy_warnings=_as_bool(
                thresholds_raw.get(
                    "fail_on_clippy_warnings", threshold_defaults.fail_on_clippy_warnings
                ),
                "thresholds.fail_on_clippy_warnings",
                issues,
            ),
        )

        if issues.has_issues:
            raise ProfileValidationError(issues.items())

        return cls(
            name=name,
            description=description,
            required_checks=required,
            optional_checks=optional,
            category_weights=weights,
            thresholds=thresholds,
            timeouts_ms=timeouts,
            parallelism=parallelism,
        )


def default_dev() -> DodProfile:
    """Lenient profile for day-to-day development."""

    return DodProfile(
        name="ggen-mcp-default",
        description="Default development profile with lenient thresholds",
        required_checks=(
            "G0_WORKSPACE",
            "BUILD_FMT",
            "BUILD_CHECK",
            "TEST_UNIT",
            "GGEN_DRY_RUN",
        ),
        optional_checks=("BUILD_CLIPPY", "TEST_INTEGRATION", "WHY_INTENT"),
        category_weights={
            CheckCategory.BUILD_CORRECTNESS: 0.25,
            CheckCategory.TEST_TRUTH: 0.25,
            CheckCategory.GGEN_PIPELINE: 0.20,
            CheckCategory.TOOL_REGISTRY: 0.15,
            CheckCategory.SAFETY_INVARIANTS: 0.10,
            CheckCategory.INTENT_ALIGNMENT: 0.05,
        },
        thresholds=ThresholdConfig(
            min_readiness_score=70.0,
            max_warnings=20,
            require_all_tests_pass=False,
            fail_on_clippy_warnings=False,
        ),
        timeouts_ms=TimeoutConfig(build=600_000, tests=900_000, ggen=300_000, default=60_000),
        parallelism=Parallelism.auto(),
    )


def enterprise_strict() -> DodProfile:
    """Release profile with strict thresholds and a wider required set."""

    return DodProfile(
        name="enterprise-strict",
        description="Production profile with strict thresholds",
        required_checks=(
            "G0_WORKSPACE",
            "G8_INTENT",
            "WHAT_TOOL_REGISTRY",
            "BUILD_FMT",
            "BUILD_CLIPPY",
            "BUILD_CHECK",
            "TEST_UNIT",
            "TEST_INTEGRATION",
            "GGEN_DRY_RUN",
            "GGEN_RENDER",
            "G8_SECRETS",
            "H1_ARTIFACTS",
        ),
        optional_checks=("TEST_PROPERTY", "H2_CHANGELOG", "H5_REPRODUCIBILITY"),
        category_weights={
            CheckCategory.BUILD_CORRECTNESS: 0.25,
            CheckCategory.TEST_TRUTH: 0.25,
            CheckCategory.GGEN_PIPELINE: 0.20,
            CheckCategory.TOOL_REGISTRY: 0.15,
            CheckCategory.SAFETY_INVARIANTS: 0.10,
            CheckCategory.INTENT_ALIGNMENT: 0.05,
        },
        thresholds=ThresholdConfig(
            min_readiness_score=90.0,
            max_warnings=5,
            require_all_tests_pass=True,
            fail_on_clippy_warnings=True,
        ),
        timeouts_ms=TimeoutConfig(build=600_000, tests=1_800_000, ggen=600_000, default=120_000),
        parallelism=Parallelism.auto(),
    )


BUILTIN_PROFILES: Final[dict[str, Callable[[], DodProfile]]] = {
    "ggen-mcp-default": default_dev,
    "enterprise-strict": enterprise_strict,
}


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ProfileValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ProfileValidationIssue(path=path, message=message))

    def items(self) -> tuple[ProfileValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def normalize_category_key(raw: str) -> str:
    """Map ``BuildCorrectness``/``build-correctness`` spellings onto enum values."""

    snake = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", raw.strip())
    return snake.replace("-", "_").lower()


def _parse_weights(value: object, issues: _IssueCollector) -> dict[CheckCategory, float]:
    raw = _as_mapping(value, "category_weights", issues)
    weights: dict[CheckCategory, float] = {}
    for key, weight in raw.items():
        path = f"category_weights.{key}"
        category = _as_enum(CheckCategory, normalize_category_key(str(key)), path, issues)
        parsed = _as_float(weight, path, issues)
        if category is not None:
            weights[category] = parsed
    return weights


def _parse_parallelism(value: object, issues: _IssueCollector) -> Parallelism:
    if isinstance(value, str):
        mode = _as_enum(ParallelismMode, value.strip().lower(), "parallelism", issues)
        if mode is ParallelismMode.FIXED:
            issues.add("parallelism", "fixed parallelism requires a 'workers' count")
        return Parallelism(mode or ParallelismMode.AUTO)

    raw = _as_mapping(value, "parallelism", issues)
    mode_raw = raw.get("mode", "auto")
    mode = _as_enum(ParallelismMode, str(mode_raw).strip().lower(), "parallelism.mode", issues)
    workers_raw = raw.get("workers")
    workers = None if workers_raw is None else _as_int(workers_raw, "parallelism.workers", issues)
    return Parallelism(mode or ParallelismMode.AUTO, workers)


def _as_mapping(value: object, path: str, issues: _IssueCollector) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        return value
    issues.add(path, f"expected object, got {type(value).__name__}")
    return {}


def _as_str(
    value: object, path: str, issues: _IssueCollector, *, allow_empty: bool = False
) -> str:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return ""
    normalized = value.strip()
    if not normalized and not allow_empty:
        issues.add(path, "must not be empty")
    return normalized


def _as_str_tuple(value: object, path: str, issues: _IssueCollector) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected array of strings, got {type(value).__name__}")
        return ()
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            issues.add(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
            continue
        items.append(item.strip())
    return tuple(items)


def _as_int(value: object, path: str, issues: _IssueCollector) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return 0
    return value


def _as_float(value: object, path: str, issues: _IssueCollector) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return 0.0
    return float(value)


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool:
    if not isinstance(value, bool):
        issues.add(path, f"expected boolean, got {type(value).__name__}")
        return False
    return value


def _as_enum(
    enum_type: type[TEnum], value: str, path: str, issues: _IssueCollector
) -> TEnum | None:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(item.value for item in enum_type)
        issues.add(path, f"invalid value {value!r}; expected one of: {allowed}")
        return None


__all__ = [
    "BUILTIN_PROFILES",
    "DodProfile",
    "Parallelism",
    "ParallelismMode",
    "ThresholdConfig",
    "TimeoutConfig",
    "default_dev",
    "enterprise_strict",
    "normalize_category_key",
]
