"""
dod-gate — unit tests for evidence bundles

Purpose
- Validate bundle layout, manifest contents, per-check log formatting,
  compression, and integrity verification.
"""

from __future__ import annotations

import json
import tarfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from dod_gate.audit import evidence
from dod_gate.audit.evidence import (
    EvidenceBundleGenerator,
    FileType,
    format_check_log,
    log_file_name,
    verify_bundle,
)
from dod_gate.domain.models import (
    ArtifactPaths,
    CheckCategory,
    CheckSeverity,
    CheckStatus,
    DodCheckResult,
    DodResult,
    DodValidationResult,
    Evidence,
    EvidenceKind,
    ValidationMode,
    Verdict,
)
from dod_gate.errors import AuditError, EvidenceBundleError
from dod_gate.utils.hashing import sha256_file

_FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)


def _checks() -> tuple[DodCheckResult, ...]:
    return (
        DodCheckResult(
            id="BUILD_CHECK",
            category=CheckCategory.BUILD_CORRECTNESS,
            status=CheckStatus.PASS,
            severity=CheckSeverity.FATAL,
            message="compiled",
            duration_ms=42,
        ),
        DodCheckResult(
            id="G8_SECRETS",
            category=CheckCategory.SAFETY_INVARIANTS,
            status=CheckStatus.FAIL,
            severity=CheckSeverity.FATAL,
            message="secret found",
            evidence=(
                Evidence(kind=EvidenceKind.FILE_CONTENT, content="AKIA1234"),
                Evidence(kind=EvidenceKind.LOG_ENTRY, content="scanner exit 1"),
            ),
            remediation=("Rotate exposed credentials", "Move secrets to a vault"),
            duration_ms=7,
        ),
    )


def _workspace(tmp_path: Path) -> tuple[Path, DodValidationResult]:
    workspace = tmp_path / "workspace"
    (workspace / "ontology").mkdir(parents=True)
    (workspace / "Cargo.toml").write_text("[package]\nname = 'demo'\n", encoding="utf-8")
    (workspace / "ontology" / "mcp-domain.ttl").write_text("@prefix : <x> .\n", encoding="utf-8")
    receipt = workspace / "dod-receipts" / "run.json"
    report = workspace / "dod-reports" / "run.md"
    receipt.parent.mkdir()
    report.parent.mkdir()
    receipt.write_text('{"final_hash": "abc"}\n', encoding="utf-8")
    report.write_text("# Definition of Done Report\n", encoding="utf-8")

    result = DodResult(
        verdict=Verdict.FAIL,
        score=40.0,
        checks=_checks(),
        category_scores={},
        duration_ms=49,
        profile_name="ggen-mcp-default",
        mode=ValidationMode.PARANOID,
        timestamp=_FIXED_NOW,
    )
    return workspace, result.to_validation_result(
        ArtifactPaths(receipt_path=receipt, report_path=report)
    )


def _generator(output_dir: Path, **kwargs: object) -> EvidenceBundleGenerator:
    return EvidenceBundleGenerator(
        output_dir=output_dir, min_free_bytes=0, clock=lambda: _FIXED_NOW, **kwargs  # type: ignore[arg-type]
    )


def test_log_file_name() -> None:
    assert log_file_name("BUILD_CHECK") == "build-check.log"
    assert log_file_name("G8_SECRETS") == "g8-secrets.log"


def test_format_check_log_layout() -> None:
    text = format_check_log(_checks()[1])

    assert text.splitlines() == [
        "=== Check: G8_SECRETS ===",
        "Status: fail",
        "Severity: fatal",
        "Category: safety_invariants",
        "Duration: 7ms",
        "Message: secret found",
        "",
        "Evidence:",
        "  1. file_content: AKIA1234",
        "  2. log_entry: scanner exit 1",
        "",
        "Remediation:",
        "  1. Rotate exposed credentials",
        "  2. Move secrets to a vault",
    ]


def test_format_check_log_omits_empty_sections() -> None:
    text = format_check_log(_checks()[0])

    assert "Evidence:" not in text
    assert "Remediation:" not in text
    assert text.endswith("Message: compiled\n\n")


def test_bundle_layout_and_manifest(tmp_path: Path) -> None:
    workspace, validation = _workspace(tmp_path)
    generator = _generator(tmp_path / "evidence")

    bundle = generator.generate(validation, workspace)

    assert bundle == tmp_path / "evidence" / "2026-01-02-030405"
    assert (bundle / "receipt.json").read_text(encoding="utf-8") == '{"final_hash": "abc"}\n'
    assert (bundle / "report.md").is_file()
    assert (bundle / "logs" / "build-check.log").is_file()
    assert (bundle / "logs" / "g8-secrets.log").is_file()
    assert (bundle / "artifacts" / "Cargo.toml").is_file()
    assert (bundle / "artifacts" / "ontology" / "mcp-domain.ttl").is_file()
    assert not (bundle / "artifacts" / "Cargo.lock").exists()

    manifest = json.loads((bundle / "manifest.json").read_text(encoding="utf-8"))
    files = manifest["files"]
    assert "manifest.json" not in files
    assert set(files) == {
        "receipt.json",
        "report.md",
        "logs/build-check.log",
        "logs/g8-secrets.log",
        "artifacts/Cargo.toml",
        "artifacts/ontology/mcp-domain.ttl",
    }
    assert manifest["profile"] == "ggen-mcp-default"
    assert manifest["mode"] == "paranoid"
    assert manifest["verdict"] == "not_ready"
    assert manifest["created_at"] == "2026-01-02T03:04:05+00:00"
    assert manifest["total_size_bytes"] == sum(entry["size_bytes"] for entry in files.values())
    for rel_path, entry in files.items():
        assert entry["path"] == rel_path
        assert entry["hash"] == sha256_file(bundle / rel_path)
        assert entry["size_bytes"] == (bundle / rel_path).stat().st_size
    assert files["receipt.json"]["file_type"] == FileType.RECEIPT.value
    assert files["logs/g8-secrets.log"]["file_type"] == "log"

    last = generator.last_manifest
    assert last is not None
    assert last.total_size_bytes == manifest["total_size_bytes"]


def test_bundle_directory_names_do_not_collide(tmp_path: Path) -> None:
    workspace, validation = _workspace(tmp_path)
    generator = _generator(tmp_path / "evidence")

    first = generator.generate(validation, workspace)
    second = generator.generate(validation, workspace)

    assert first.name == "2026-01-02-030405"
    assert second.name == "2026-01-02-030405-1"


def test_missing_receipt_and_report_are_skipped(tmp_path: Path) -> None:
    workspace, validation = _workspace(tmp_path)
    validation.artifacts.receipt_path.unlink()
    validation.artifacts.report_path.unlink()

    bundle = _generator(tmp_path / "evidence").generate(validation, workspace)

    files = json.loads((bundle / "manifest.json").read_text(encoding="utf-8"))["files"]
    assert "receipt.json" not in files
    assert "report.md" not in files
    assert "logs/build-check.log" in files


@pytest.mark.parametrize("kind", ["missing", "file"])
def test_invalid_workspace_is_rejected(tmp_path: Path, kind: str) -> None:
    _, validation = _workspace(tmp_path)
    target = tmp_path / "not-a-workspace"
    if kind == "file":
        target.write_text("x", encoding="utf-8")

    with pytest.raises(EvidenceBundleError) as excinfo:
        _generator(tmp_path / "evidence").generate(validation, target)

    assert isinstance(excinfo.value, AuditError)
    assert not (tmp_path / "evidence").exists()


def test_insufficient_disk_space_is_rejected(tmp_path: Path) -> None:
    workspace, validation = _workspace(tmp_path)
    generator = EvidenceBundleGenerator(
        output_dir=tmp_path / "evidence", min_free_bytes=2**62, clock=lambda: _FIXED_NOW
    )

    with pytest.raises(EvidenceBundleError) as excinfo:
        generator.generate(validation, workspace)

    assert "insufficient disk space" in str(excinfo.value)


def test_compressed_bundle(tmp_path: Path) -> None:
    workspace, validation = _workspace(tmp_path)
    generator = _generator(tmp_path / "evidence").with_compression()

    archive = generator.generate(validation, workspace)

    assert archive == tmp_path / "evidence" / "2026-01-02-030405.tar.gz"
    assert not (tmp_path / "evidence" / "2026-01-02-030405").exists()
    with tarfile.open(archive, "r:gz") as handle:
        names = set(handle.getnames())
    assert "2026-01-02-030405/manifest.json" in names
    assert "2026-01-02-030405/logs/g8-secrets.log" in names

    # A later bundle in the same second must not reuse the archived name.
    assert generator.generate(validation, workspace).name == "2026-01-02-030405-1.tar.gz"


def test_verify_bundle_detects_tampering(tmp_path: Path) -> None:
    workspace, validation = _workspace(tmp_path)
    bundle = _generator(tmp_path / "evidence").generate(validation, workspace)

    assert verify_bundle(bundle).is_valid

    (bundle / "logs" / "build-check.log").write_text("edited\n", encoding="utf-8")
    (bundle / "report.md").unlink()
    report = verify_bundle(bundle)

    assert not report.is_valid
    assert report.hash_mismatches == ("logs/build-check.log",)
    assert report.missing_paths == ("report.md",)


def test_verify_bundle_requires_manifest(tmp_path: Path) -> None:
    (tmp_path / "bundle").mkdir()
    with pytest.raises(EvidenceBundleError):
        verify_bundle(tmp_path / "bundle")

    (tmp_path / "bundle" / "manifest.json").write_text("[]", encoding="utf-8")
    with pytest.raises(EvidenceBundleError):
        verify_bundle(tmp_path / "bundle")


def test_failed_write_removes_partial_bundle(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    workspace, validation = _workspace(tmp_path)
    output_dir = tmp_path / "evidence"

    def disk_full(path: Path, data: str | bytes) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(evidence, "atomic_write", disk_full)

    with pytest.raises(EvidenceBundleError, match="No space left"):
        _generator(output_dir).generate(validation, workspace)

    assert list(output_dir.iterdir()) == []


def test_failed_compression_removes_partial_archive(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    workspace, validation = _workspace(tmp_path)
    output_dir = tmp_path / "evidence"

    def truncated_open(name: Path, mode: str = "r", **_: object) -> tarfile.TarFile:
        Path(name).write_bytes(b"\x1f\x8b partial")
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(evidence.tarfile, "open", truncated_open)

    with pytest.raises(EvidenceBundleError):
        _generator(output_dir).with_compression().generate(validation, workspace)

    assert list(output_dir.iterdir()) == []
