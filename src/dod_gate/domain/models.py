"""Immutable result and verdict models shared by every stage of a validation run."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import NoReturn, TypeVar

from dod_gate.constants import MAX_SCORE
from dod_gate.utils.hashing import sha256_text

TEnum = TypeVar("TEnum", bound=StrEnum)


class CheckCategory(StrEnum):
    WORKSPACE_INTEGRITY = "workspace_integrity"
    INTENT_ALIGNMENT = "intent_alignment"
    TOOL_REGISTRY = "tool_registry"
    BUILD_CORRECTNESS = "build_correctness"
    TEST_TRUTH = "test_truth"
    GGEN_PIPELINE = "ggen_pipeline"
    SAFETY_INVARIANTS = "safety_invariants"
    DEPLOYMENT_READINESS = "deployment_readiness"


class CheckSeverity(StrEnum):
    FATAL = "fatal"
    WARNING = "warning"
    INFO = "info"


class CheckStatus(StrEnum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    SKIP = "skip"


class EvidenceKind(StrEnum):
    FILE_CONTENT = "file_content"
    COMMAND_OUTPUT = "command_output"
    LOG_ENTRY = "log_entry"
    METRIC = "metric"
    HASH = "hash"


class ValidationMode(StrEnum):
    FAST = "fast"
    STRICT = "strict"
    PARANOID = "paranoid"


class OverallVerdict(StrEnum):
    READY = "ready"
    NOT_READY = "not_ready"


class Verdict(StrEnum):
    """Tri-state verdict reported by the validator."""

    PASS = "pass"
    FAIL = "fail"
    PARTIAL_PASS = "partial_pass"

    @property
    def is_ship_ready(self) -> bool:
        return self is Verdict.PASS

    def to_overall_verdict(self) -> OverallVerdict:
        if self is Verdict.PASS:
            return OverallVerdict.READY
        return OverallVerdict.NOT_READY


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(item.value for item in enum_type)
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        _fail(path, f"expected a sequence of strings, got {type(value).__name__}")
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            _fail(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
        items.append(item)
    return tuple(items)


@dataclass(frozen=True, slots=True)
class Evidence:
    """One piece of supporting material produced by a check.

    ``hash`` defaults to the SHA-256 of ``content`` when not supplied.
    """

    kind: EvidenceKind
    content: str
    file_path: str | None = None
    line_number: int | None = None
    hash: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _as_enum(EvidenceKind, self.kind, "Evidence.kind"))
        if not isinstance(self.content, str):
            _fail("Evidence.content", f"expected string, got {type(self.content).__name__}")
        if self.line_number is not None and (
            isinstance(self.line_number, bool) or not isinstance(self.line_number, int)
        ):
            _fail("Evidence.line_number", "expected integer or None")
        if not self.hash:
            object.__setattr__(self, "hash", sha256_text(self.content))

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "content": self.content,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Evidence:
        line_number = data.get("line_number")
        file_path = data.get("file_path")
        return cls(
            kind=_as_enum(EvidenceKind, data.get("kind"), "Evidence.kind"),
            content=str(data.get("content", "")),
            file_path=None if file_path is None else str(file_path),
            line_number=line_number if isinstance(line_number, int) else None,
            hash=str(data.get("hash") or ""),
        )


@dataclass(frozen=True, slots=True)
class DodCheckResult:
    """Outcome of one check execution. Immutable once produced."""

    id: str
    category: CheckCategory
    status: CheckStatus
    severity: CheckSeverity
    message: str
    evidence: tuple[Evidence, ...] = ()
    remediation: tuple[str, ...] = ()
    duration_ms: int = 0
    check_hash: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            _fail("DodCheckResult.id", "must be a non-empty string")
        object.__setattr__(
            self, "category", _as_enum(CheckCategory, self.category, "DodCheckResult.category")
        )
        object.__setattr__(
            self, "status", _as_enum(CheckStatus, self.status, "DodCheckResult.status")
        )
        object.__setattr__(
            self, "severity", _as_enum(CheckSeverity, self.severity, "DodCheckResult.severity")
        )
        object.__setattr__(self, "evidence", tuple(self.evidence))
        object.__setattr__(
            self, "remediation", _as_str_tuple(self.remediation, "DodCheckResult.remediation")
        )
        if isinstance(self.duration_ms, bool) or not isinstance(self.duration_ms, int):
            _fail("DodCheckResult.duration_ms", "expected integer")
        if self.duration_ms < 0:
            _fail("DodCheckResult.duration_ms", "must be >= 0")

    @property
    def is_fatal_failure(self) -> bool:
        return self.status is CheckStatus.FAIL and self.severity is CheckSeverity.FATAL

    def with_updates(self, **changes: object) -> DodCheckResult:
        return replace(self, **changes)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "category": self.category.value,
            "status": self.status.value,
            "severity": self.severity.value,
            "message": self.message,
            "evidence": [item.to_dict() for item in self.evidence],
            "remediation": list(self.remediation),
            "duration_ms": self.duration_ms,
            "check_hash": self.check_hash,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DodCheckResult:
        raw_evidence = data.get("evidence", [])
        if not isinstance(raw_evidence, Sequence):
            _fail("DodCheckResult.evidence", "expected array")
        evidence = tuple(
            Evidence.from_dict(item) for item in raw_evidence if isinstance(item, Mapping)
        )
        duration_ms = data.get("duration_ms", 0)
        return cls(
            id=str(data.get("id", "")),
            category=_as_enum(CheckCategory, data.get("category"), "DodCheckResult.category"),
            status=_as_enum(CheckStatus, data.get("status"), "DodCheckResult.status"),
            severity=_as_enum(CheckSeverity, data.get("severity"), "DodCheckResult.severity"),
            message=str(data.get("message", "")),
            evidence=evidence,
            remediation=_as_str_tuple(data.get("remediation", ()), "DodCheckResult.remediation"),
            duration_ms=duration_ms if isinstance(duration_ms, int) else 0,
            check_hash=str(data.get("check_hash", "")),
        )


@dataclass(frozen=True, slots=True)
class CategoryScore:
    category: CheckCategory
    score: float
    weight: float
    checks_passed: int = 0
    checks_failed: int = 0
    checks_warned: int = 0
    checks_skipped: int = 0

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category.value,
            "score": self.score,
            "weight": self.weight,
            "checks_passed": self.checks_passed,
            "checks_failed": self.checks_failed,
            "checks_warned": self.checks_warned,
            "checks_skipped": self.checks_skipped,
        }


@dataclass(frozen=True, slots=True)
class ValidationSummary:
    checks_total: int = 0
    checks_passed: int = 0
    checks_failed: int = 0
    checks_warned: int = 0
    checks_skipped: int = 0

    @classmethod
    def from_results(cls, results: Sequence[DodCheckResult]) -> ValidationSummary:
        return cls(
            checks_total=len(results),
            checks_passed=_count(results, CheckStatus.PASS),
            checks_failed=_count(results, CheckStatus.FAIL),
            checks_warned=_count(results, CheckStatus.WARN),
            checks_skipped=_count(results, CheckStatus.SKIP),
        )

    @property
    def pass_rate(self) -> float:
        """Passed checks over all checks, in ``[0.0, 1.0]``."""

        if self.checks_total == 0:
            return 0.0
        return self.checks_passed / self.checks_total

    def to_dict(self) -> dict[str, int]:
        return {
            "checks_total": self.checks_total,
            "checks_passed": self.checks_passed,
            "checks_failed": self.checks_failed,
            "checks_warned": self.checks_warned,
            "checks_skipped": self.checks_skipped,
        }


@dataclass(frozen=True, slots=True)
class ArtifactPaths:
    receipt_path: Path
    report_path: Path
    bundle_path: Path | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "receipt_path": self.receipt_path.as_posix(),
            "report_path": self.report_path.as_posix(),
            "bundle_path": None if self.bundle_path is None else self.bundle_path.as_posix(),
        }


@dataclass(frozen=True, slots=True)
class DodValidationResult:
    """Top-level, artifact-bearing output of a recorded run."""

    verdict: OverallVerdict
    readiness_score: float
    profile: str
    mode: ValidationMode
    summary: ValidationSummary
    category_scores: Mapping[CheckCategory, CategoryScore]
    check_results: tuple[DodCheckResult, ...]
    artifacts: ArtifactPaths
    duration_ms: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "check_results", tuple(self.check_results))
        object.__setattr__(self, "category_scores", dict(self.category_scores))

    @property
    def has_issues(self) -> bool:
        return self.summary.checks_failed > 0 or self.summary.checks_warned > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "verdict": self.verdict.value,
            "readiness_score": self.readiness_score,
            "profile": self.profile,
            "mode": self.mode.value,
            "summary": self.summary.to_dict(),
            "category_scores": {
                category.value: score.to_dict()
                for category, score in sorted(
                    self.category_scores.items(), key=lambda item: _category_index(item[0])
                )
            },
            "check_results": [result.to_dict() for result in self.check_results],
            "artifacts": self.artifacts.to_dict(),
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class DodResult:
    """Aggregated validator output used for orchestration decisions."""

    verdict: Verdict
    score: float
    checks: tuple[DodCheckResult, ...]
    category_scores: Mapping[CheckCategory, CategoryScore]
    duration_ms: int
    profile_name: str
    mode: ValidationMode
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    max_score: float = MAX_SCORE

    def __post_init__(self) -> None:
        object.__setattr__(self, "checks", tuple(self.checks))
        object.__setattr__(self, "category_scores", dict(self.category_scores))

    def count_by_status(self, status: CheckStatus) -> int:
        return _count(self.checks, status)

    def failed_checks(self) -> list[DodCheckResult]:
        return [check for check in self.checks if check.status is CheckStatus.FAIL]

    def fatal_failures(self) -> list[DodCheckResult]:
        return [check for check in self.checks if check.is_fatal_failure]

    def warned_checks(self) -> list[DodCheckResult]:
        return [check for check in self.checks if check.status is CheckStatus.WARN]

    def summary(self) -> ValidationSummary:
        return ValidationSummary.from_results(self.checks)

    def meets_threshold(self, min_score: float) -> bool:
        return self.score >= min_score

    def execution_time_str(self) -> str:
        seconds = self.duration_ms // 1000
        if seconds < 60:
            return f"{seconds}s"
        return f"{seconds // 60}m {seconds % 60}s"

    def to_validation_result(self, artifacts: ArtifactPaths) -> DodValidationResult:
        return DodValidationResult(
            verdict=self.verdict.to_overall_verdict(),
            readiness_score=self.score,
            profile=self.profile_name,
            mode=self.mode,
            summary=self.summary(),
            category_scores=self.category_scores,
            check_results=self.checks,
            artifacts=artifacts,
            duration_ms=self.duration_ms,
        )


def _count(results: Sequence[DodCheckResult], status: CheckStatus) -> int:
    return sum(1 for result in results if result.status is status)


def _category_index(category: CheckCategory) -> int:
    return list(CheckCategory).index(category)


__all__ = [
    "ArtifactPaths",
    "CategoryScore",
    "CheckCategory",
    "CheckSeverity",
    "CheckStatus",
    "DodCheckResult",
    "DodResult",
    "DodValidationResult",
    "Evidence",
    "EvidenceKind",
    "OverallVerdict",
    "ValidationMode",
    "ValidationSummary",
    "Verdict",
]
