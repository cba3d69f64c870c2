"""
dod-gate — evidence bundles

Purpose
- Assemble a timestamped, hashed snapshot of a run: receipt, report, one log
  per check, snapshots of well-known workspace files, and a manifest.
- Optionally pack the bundle into ``<timestamp>.tar.gz``.

Functional requirements
- The workspace root must exist; missing receipt/report files are skipped
  with a warning, never an error.
- ``manifest.json`` lists every bundled file (except itself) with relative
  POSIX path, size, SHA-256 and a type tag; ``total_size_bytes`` is the sum
  of the entry sizes.
- Disk-space checking is best-effort: an unreadable free-space value skips
  the check, a confirmed shortfall raises.

Non-functional requirements
- Infrastructure failures surface as ``EvidenceBundleError``; a bundle that
  cannot be written compromises the audit trail.
- A failed write leaves no partial bundle directory or archive behind.
"""

from __future__ import annotations

import json
import shutil
import tarfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Final

import structlog

from dod_gate.constants import DEFAULT_ARTIFACT_SNAPSHOTS, MIN_FREE_BYTES, TIMESTAMP_FORMAT
from dod_gate.domain.models import DodCheckResult, DodValidationResult, ValidationMode
from dod_gate.errors import EvidenceBundleError
from dod_gate.utils.fs import atomic_copy, atomic_write, free_disk_bytes
from dod_gate.utils.hashing import sha256_bytes, verify_manifest

logger = structlog.get_logger(__name__)

_MANIFEST_FILE_NAME: Final[str] = "manifest.json"
_RECEIPT_FILE_NAME: Final[str] = "receipt.json"
_REPORT_FILE_NAME: Final[str] = "report.md"
_LOGS_DIR: Final[str] = "logs"
_ARTIFACTS_DIR: Final[str] = "artifacts"


class FileType(StrEnum):
    RECEIPT = "receipt"
    REPORT = "report"
    LOG = "log"
    ARTIFACT = "artifact"
    MANIFEST = "manifest"


@dataclass(frozen=True, slots=True)
class FileEntry:
    path: str
    size_bytes: int
    hash: str
    file_type: FileType

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "size_bytes": self.size_bytes,
            "hash": self.hash,
            "file_type": self.file_type.value,
        }


@dataclass(frozen=True, slots=True)
class EvidenceManifest:
    created_at: str
    profile: str
    mode: ValidationMode
    verdict: str
    readiness_score: float
    files: dict[str, FileEntry]
    total_size_bytes: int

    def to_dict(self) -> dict[str, object]:
        return {
            "created_at": self.created_at,
            "profile": self.profile,
            "mode": self.mode.value,
            "verdict": self.verdict,
            "readiness_score": self.readiness_score,
            "files": {path: self.files[path].to_dict() for path in sorted(self.files)},
            "total_size_bytes": self.total_size_bytes,
        }


@dataclass(frozen=True, slots=True)
class BundleIntegrityReport:
    missing_paths: tuple[str, ...]
    hash_mismatches: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return not self.missing_paths and not self.hash_mismatches


def log_file_name(check_id: str) -> str:
    return f"{check_id.lower().replace('_', '-')}.log"


def format_check_log(check: DodCheckResult) -> str:
    lines = [
        f"=== Check: {check.id} ===",
        f"Status: {check.status.value}",
        f"Severity: {check.severity.value}",
        f"Category: {check.category.value}",
        f"Duration: {check.duration_ms}ms",
        f"Message: {check.message}",
        "",
    ]
    if check.evidence:
        lines.append("Evidence:")
        lines.extend(
            f"  {index}. {item.kind.value}: {item.content}"
            for index, item in enumerate(check.evidence, start=1)
        )
        lines.append("")
    if check.remediation:
        lines.append("Remediation:")
        lines.extend(
            f"  {index}. {step}" for index, step in enumerate(check.remediation, start=1)
        )
    return "\n".join(lines) + "\n"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class EvidenceBundleGenerator:
    """Write evidence bundles under ``output_dir``."""

    output_dir: Path
    compress: bool = False
    artifact_paths: Sequence[str] = DEFAULT_ARTIFACT_SNAPSHOTS
    min_free_bytes: int = MIN_FREE_BYTES
    clock: Callable[[], datetime] = _utc_now
    _last_manifest: EvidenceManifest | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        self.artifact_paths = tuple(self.artifact_paths)

    def with_compression(self) -> EvidenceBundleGenerator:
        return EvidenceBundleGenerator(
            output_dir=self.output_dir,
            compress=True,
            artifact_paths=self.artifact_paths,
            min_free_bytes=self.min_free_bytes,
            clock=self.clock,
        )

    @property
    def last_manifest(self) -> EvidenceManifest | None:
        return self._last_manifest

    def generate(self, result: DodValidationResult, workspace_root: str | Path) -> Path:
        """Build the bundle and return its directory (or ``.tar.gz`` when compressing)."""

        workspace = Path(workspace_root)
        self._validate_inputs(result, workspace)

        timestamp = self.clock().astimezone(UTC)
        bundle_dir = self._create_bundle_dir(timestamp)
        logger.info("evidence_bundle_started", bundle_dir=bundle_dir.as_posix())

        try:
            files: dict[str, FileEntry] = {}
            self._copy_if_present(
                result.artifacts.receipt_path, bundle_dir, _RECEIPT_FILE_NAME, FileType.RECEIPT, files
            )
            self._copy_if_present(
                result.artifacts.report_path, bundle_dir, _REPORT_FILE_NAME, FileType.REPORT, files
            )
            self._collect_logs(result, bundle_dir, files)
            self._collect_artifacts(workspace, bundle_dir, files)

            manifest = EvidenceManifest(
                created_at=timestamp.isoformat(timespec="seconds"),
                profile=result.profile,
                mode=result.mode,
                verdict=result.verdict.value,
                readiness_score=result.readiness_score,
                files=files,
                total_size_bytes=sum(entry.size_bytes for entry in files.values()),
            )
            _write_json_file(bundle_dir / _MANIFEST_FILE_NAME, manifest.to_dict())
            self._last_manifest = manifest
            logger.info(
                "evidence_manifest_written",
                files=len(files),
                size_bytes=manifest.total_size_bytes,
            )

            if not self.compress:
                return bundle_dir
            archive_path = self._compress_bundle(bundle_dir)
            shutil.rmtree(bundle_dir)
            return archive_path
        except OSError as exc:
            shutil.rmtree(bundle_dir, ignore_errors=True)
            logger.warning("evidence_bundle_discarded", bundle_dir=bundle_dir.as_posix())
            raise EvidenceBundleError(f"unable to write evidence bundle {bundle_dir}: {exc}") from exc

    def _validate_inputs(self, result: DodValidationResult, workspace: Path) -> None:
        if not workspace.exists():
            raise EvidenceBundleError(f"workspace root does not exist: {workspace}")
        if not workspace.is_dir():
            raise EvidenceBundleError(f"workspace root is not a directory: {workspace}")

        free_bytes = free_disk_bytes(self.output_dir)
        if free_bytes is None:
            logger.debug("evidence_disk_check_skipped", output_dir=self.output_dir.as_posix())
        elif free_bytes < self.min_free_bytes:
            raise EvidenceBundleError(
                f"insufficient disk space for evidence bundle: {free_bytes} bytes free, "
                f"{self.min_free_bytes} required"
            )

        if not result.check_results:
            logger.warning("evidence_bundle_without_checks", profile=result.profile)

    def _create_bundle_dir(self, timestamp: datetime) -> Path:
        stem = timestamp.strftime(TIMESTAMP_FORMAT)
        candidate = self.output_dir / stem
        counter = 1
        while candidate.exists() or candidate.with_name(f"{candidate.name}.tar.gz").exists():
            candidate = self.output_dir / f"{stem}-{counter}"
            counter += 1
        try:
            (candidate / _LOGS_DIR).mkdir(parents=True)
            (candidate / _ARTIFACTS_DIR).mkdir()
        except OSError as exc:
            raise EvidenceBundleError(f"unable to create bundle directory {candidate}: {exc}") from exc
        return candidate

    def _copy_if_present(
        self,
        source: Path,
        bundle_dir: Path,
        name: str,
        file_type: FileType,
        files: dict[str, FileEntry],
    ) -> None:
        if not source.is_file():
            logger.warning("evidence_source_missing", source=source.as_posix(), file_type=file_type.value)
            return
        payload = atomic_copy(source, bundle_dir / name)
        _track(files, name, payload, file_type)

    def _collect_logs(
        self, result: DodValidationResult, bundle_dir: Path, files: dict[str, FileEntry]
    ) -> None:
        for check in result.check_results:
            rel_path = f"{_LOGS_DIR}/{log_file_name(check.id)}"
            payload = format_check_log(check).encode("utf-8")
            atomic_write(bundle_dir / rel_path, payload)
            _track(files, rel_path, payload, FileType.LOG)

    def _collect_artifacts(
        self, workspace: Path, bundle_dir: Path, files: dict[str, FileEntry]
    ) -> None:
        for rel_name in self.artifact_paths:
            source = workspace / rel_name
            if not source.is_file():
                logger.debug("evidence_artifact_absent", path=rel_name)
                continue
            rel_path = f"{_ARTIFACTS_DIR}/{Path(rel_name).as_posix()}"
            payload = atomic_copy(source, bundle_dir / rel_path)
            _track(files, rel_path, payload, FileType.ARTIFACT)

    def _compress_bundle(self, bundle_dir: Path) -> Path:
        archive_path = bundle_dir.with_name(f"{bundle_dir.name}.tar.gz")
        try:
            with tarfile.open(archive_path, "w:gz") as archive:
                archive.add(bundle_dir, arcname=bundle_dir.name)
        except OSError:
            archive_path.unlink(missing_ok=True)
            raise
        logger.info("evidence_bundle_compressed", archive=archive_path.as_posix())
        return archive_path


def verify_bundle(bundle_dir: str | Path) -> BundleIntegrityReport:
    """Recompute every manifest entry's hash for an uncompressed bundle."""

    root = Path(bundle_dir)
    manifest_path = root / _MANIFEST_FILE_NAME
    try:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise EvidenceBundleError(f"unable to read manifest {manifest_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise EvidenceBundleError(f"invalid manifest JSON in {manifest_path}: {exc}") from exc

    files = payload.get("files") if isinstance(payload, dict) else None
    if not isinstance(files, dict):
        raise EvidenceBundleError(f"manifest has no 'files' object: {manifest_path}")
    expected = {
        str(path): str(entry.get("hash", ""))
        for path, entry in files.items()
        if isinstance(entry, dict)
    }
    try:
        missing, corrupted = verify_manifest(root, expected)
    except ValueError as exc:
        raise EvidenceBundleError(f"malformed manifest {manifest_path}: {exc}") from exc
    return BundleIntegrityReport(missing_paths=tuple(missing), hash_mismatches=tuple(corrupted))


def _track(files: dict[str, FileEntry], rel_path: str, payload: bytes, file_type: FileType) -> None:
    files[rel_path] = FileEntry(
        path=rel_path,
        size_bytes=len(payload),
        hash=sha256_bytes(payload),
        file_type=file_type,
    )


def _write_json_file(path: Path, payload: dict[str, object]) -> None:
    atomic_write(path, json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n")


__all__ = [
    "BundleIntegrityReport",
    "EvidenceBundleGenerator",
    "EvidenceManifest",
    "FileEntry",
    "FileType",
    "format_check_log",
    "log_file_name",
    "verify_bundle",
]
