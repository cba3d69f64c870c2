"""
dod-gate — cryptographic receipts

Purpose
- Hash each check result deterministically, left-fold the ordered hashes into
  a chain, and bind the chain to the run's verdict, score, profile and mode.
- Persist receipts as JSON and verify them after the fact.

Functional requirements
- ``hash_check_result`` is pure: evidence hashes are sorted before hashing,
  remediation keeps its authored order.
- Reordering the same results changes ``final_hash``; execution order is part
  of the audited record.
- Verification never raises for a tampered receipt; it returns ``False`` and
  logs a tamper warning.
- Git metadata is best-effort and never aborts receipt generation.

Non-functional requirements
- Receipt JSON is pretty-printed with sorted keys and written atomically.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, NoReturn

import structlog

from dod_gate.audit.git_metadata import GitMetadataProvider, GitMetadataSource
from dod_gate.constants import RECEIPT_VERSION, TIMESTAMP_FORMAT
from dod_gate.domain.models import (
    CheckCategory,
    CheckSeverity,
    CheckStatus,
    DodCheckResult,
    DodValidationResult,
    OverallVerdict,
    ValidationMode,
)
from dod_gate.errors import ReceiptError
from dod_gate.utils.fs import atomic_write, unique_path
from dod_gate.utils.hashing import sha256_parts

logger = structlog.get_logger(__name__)

_RECEIPT_KEYS: Final[frozenset[str]] = frozenset(
    {
        "version",
        "timestamp",
        "verdict",
        "score",
        "profile",
        "mode",
        "duration_ms",
        "check_hashes",
        "final_hash",
        "metadata",
    }
)


def hash_check_result(check: DodCheckResult) -> str:
    """Content hash of one result: identity, outcome, sorted evidence, ordered remediation."""

    parts: list[str] = [
        check.id,
        check.category.value,
        check.status.value,
        check.severity.value,
        check.message,
    ]
    parts.extend(sorted(evidence.hash for evidence in check.evidence))
    parts.extend(check.remediation)
    return sha256_parts(parts)


def chain_hashes(
    hashes: Sequence[str],
    *,
    verdict: OverallVerdict,
    score: float,
    profile: str,
    mode: ValidationMode,
) -> str:
    """Left-fold ``hashes`` and bind the result to the run metadata."""

    metadata = (verdict.value, _score_text(score), profile, mode.value)
    if not hashes:
        return sha256_parts(metadata)

    chain = hashes[0]
    for current in hashes[1:]:
        chain = sha256_parts((chain, current))
    return sha256_parts((chain, *metadata))


def _score_text(score: float) -> str:
    # repr() is the shortest round-tripping form, so a JSON reload hashes identically.
    return repr(float(score))


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _fail(path: str, message: str) -> NoReturn:
    raise ReceiptError(f"{path}: {message}")


@dataclass(frozen=True, slots=True)
class CheckHash:
    check_id: str
    category: CheckCategory
    status: CheckStatus
    severity: CheckSeverity
    hash: str
    duration_ms: int

    @classmethod
    def from_result(cls, result: DodCheckResult) -> CheckHash:
        return cls(
            check_id=result.id,
            category=result.category,
            status=result.status,
            severity=result.severity,
            hash=result.check_hash or hash_check_result(result),
            duration_ms=result.duration_ms,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "check_id": self.check_id,
            "category": self.category.value,
            "status": self.status.value,
            "severity": self.severity.value,
            "hash": self.hash,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: object, path: str) -> CheckHash:
        if not isinstance(data, Mapping):
            _fail(path, "expected object")
        try:
            return cls(
                check_id=str(data["check_id"]),
                category=CheckCategory(data["category"]),
                status=CheckStatus(data["status"]),
                severity=CheckSeverity(data["severity"]),
                hash=str(data["hash"]),
                duration_ms=int(data["duration_ms"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            _fail(path, f"invalid check hash entry: {exc}")


@dataclass(frozen=True, slots=True)
class ReceiptMetadata:
    workspace_root: str
    checks_total: int = 0
    checks_passed: int = 0
    checks_failed: int = 0
    checks_warned: int = 0
    checks_skipped: int = 0
    git_commit: str | None = None
    git_branch: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "workspace_root": self.workspace_root,
            "checks_total": self.checks_total,
            "checks_passed": self.checks_passed,
            "checks_failed": self.checks_failed,
            "checks_warned": self.checks_warned,
            "checks_skipped": self.checks_skipped,
            "git_commit": self.git_commit,
            "git_branch": self.git_branch,
        }

    @classmethod
    def from_dict(cls, data: object) -> ReceiptMetadata:
        if not isinstance(data, Mapping):
            _fail("Receipt.metadata", "expected object")
        try:
            return cls(
                workspace_root=str(data["workspace_root"]),
                checks_total=int(data.get("checks_total", 0)),
                checks_passed=int(data.get("checks_passed", 0)),
                checks_failed=int(data.get("checks_failed", 0)),
                checks_warned=int(data.get("checks_warned", 0)),
                checks_skipped=int(data.get("checks_skipped", 0)),
                git_commit=_optional_str(data.get("git_commit")),
                git_branch=_optional_str(data.get("git_branch")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            _fail("Receipt.metadata", f"invalid metadata: {exc}")


@dataclass(frozen=True, slots=True)
class Receipt:
    """Tamper-evident record of one run; editing any chained field invalidates ``final_hash``."""

    version: str
    timestamp: str
    verdict: OverallVerdict
    score: float
    profile: str
    mode: ValidationMode
    duration_ms: int
    check_hashes: tuple[CheckHash, ...]
    final_hash: str
    metadata: ReceiptMetadata

    def __post_init__(self) -> None:
        object.__setattr__(self, "check_hashes", tuple(self.check_hashes))

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "verdict": self.verdict.value,
            "score": self.score,
            "profile": self.profile,
            "mode": self.mode.value,
            "duration_ms": self.duration_ms,
            "check_hashes": [entry.to_dict() for entry in self.check_hashes],
            "final_hash": self.final_hash,
            "metadata": self.metadata.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Receipt:
        if not isinstance(data, Mapping):
            _fail("Receipt", "root must be an object")
        missing = sorted(_RECEIPT_KEYS - set(data))
        if missing:
            _fail("Receipt", f"missing required fields: {missing}")
        raw_hashes = data["check_hashes"]
        if not isinstance(raw_hashes, list):
            _fail("Receipt.check_hashes", "expected array")
        score = data["score"]
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            _fail("Receipt.score", "expected number")
        duration_ms = data["duration_ms"]
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, int):
            _fail("Receipt.duration_ms", "expected integer")
        try:
            verdict = OverallVerdict(data["verdict"])
            mode = ValidationMode(data["mode"])
        except ValueError as exc:
            _fail("Receipt", str(exc))
        return cls(
            version=str(data["version"]),
            timestamp=str(data["timestamp"]),
            verdict=verdict,
            score=float(score),
            profile=str(data["profile"]),
            mode=mode,
            duration_ms=duration_ms,
            check_hashes=tuple(
                CheckHash.from_dict(entry, f"Receipt.check_hashes[{index}]")
                for index, entry in enumerate(raw_hashes)
            ),
            final_hash=str(data["final_hash"]),
            metadata=ReceiptMetadata.from_dict(data["metadata"]),
        )


@dataclass(slots=True)
class ReceiptGenerator:
    """Build, persist and verify receipts for completed runs."""

    git_provider: GitMetadataSource | None = field(default_factory=GitMetadataProvider)
    clock: Callable[[], datetime] = _utc_now

    def generate(self, result: DodValidationResult, workspace_root: str | Path) -> Receipt:
        root = Path(workspace_root)
        check_hashes = tuple(CheckHash.from_result(check) for check in result.check_results)
        final_hash = chain_hashes(
            [entry.hash for entry in check_hashes],
            verdict=result.verdict,
            score=result.readiness_score,
            profile=result.profile,
            mode=result.mode,
        )
        summary = result.summary
        metadata = ReceiptMetadata(
            workspace_root=root.as_posix(),
            checks_total=summary.checks_total,
            checks_passed=summary.checks_passed,
            checks_failed=summary.checks_failed,
            checks_warned=summary.checks_warned,
            checks_skipped=summary.checks_skipped,
            git_commit=self._git_value("commit", root),
            git_branch=self._git_value("branch", root),
        )
        receipt = Receipt(
            version=RECEIPT_VERSION,
            timestamp=self.clock().astimezone(UTC).isoformat(timespec="seconds"),
            verdict=result.verdict,
            score=float(result.readiness_score),
            profile=result.profile,
            mode=result.mode,
            duration_ms=result.duration_ms,
            check_hashes=check_hashes,
            final_hash=final_hash,
            metadata=metadata,
        )
        logger.info(
            "receipt_generated",
            profile=receipt.profile,
            verdict=receipt.verdict.value,
            checks=len(check_hashes),
            final_hash=final_hash,
        )
        return receipt

    def verify(self, receipt: Receipt) -> bool:
        """Recompute the chain from stored hashes and metadata; ``False`` on mismatch."""

        expected = chain_hashes(
            [entry.hash for entry in receipt.check_hashes],
            verdict=receipt.verdict,
            score=receipt.score,
            profile=receipt.profile,
            mode=receipt.mode,
        )
        if expected == receipt.final_hash:
            return True
        logger.warning(
            "receipt_tamper_detected",
            expected=expected,
            actual=receipt.final_hash,
            profile=receipt.profile,
        )
        return False

    def save(self, receipt: Receipt, directory: str | Path) -> Path:
        """Write ``<directory>/<YYYY-MM-DD-HHMMSS>.json`` and return its path."""

        target_dir = Path(directory)
        return self.write(
            receipt, unique_path(target_dir, _filename_stem(receipt.timestamp), ".json")
        )

    def write(self, receipt: Receipt, path: str | Path) -> Path:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(target, receipt.to_json())
        except OSError as exc:
            raise ReceiptError(f"unable to save receipt {target}: {exc}") from exc
        logger.info("receipt_saved", path=target.as_posix())
        return target

    def load(self, path: str | Path) -> Receipt:
        source = Path(path)
        try:
            payload = json.loads(source.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ReceiptError(f"unable to read receipt {source}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ReceiptError(f"invalid receipt JSON in {source}: {exc}") from exc
        return Receipt.from_dict(payload)

    def generate_and_save(
        self,
        result: DodValidationResult,
        workspace_root: str | Path,
        directory: str | Path,
    ) -> tuple[Receipt, Path]:
        receipt = self.generate(result, workspace_root)
        return receipt, self.save(receipt, directory)

    def _git_value(self, attribute: str, root: Path) -> str | None:
        if self.git_provider is None:
            return None
        try:
            return getattr(self.git_provider, attribute)(root)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "git_metadata_failed", field=attribute, error=f"{type(exc).__name__}: {exc}"
            )
            return None


def _filename_stem(timestamp: str) -> str:
    try:
        moment = datetime.fromisoformat(timestamp)
    except ValueError:
        moment = datetime.now(tz=UTC)
    return moment.strftime(TIMESTAMP_FORMAT)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


__all__ = [
    "CheckHash",
    "Receipt",
    "ReceiptGenerator",
    "ReceiptMetadata",
    "chain_hashes",
    "hash_check_result",
]
