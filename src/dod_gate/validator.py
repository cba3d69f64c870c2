"""
dod-gate — validator

Purpose
- Tie a run together: execute the profile's checks, score categories,
  compute the verdict, and optionally record the report, receipt and
  evidence bundle for the run.

Functional requirements
- The workspace root must exist and be a directory before any check runs.
- A failed run still produces a complete result; only configuration or audit
  infrastructure errors raise.
- Artifact paths default to ``dod-receipts/`` and ``dod-reports/`` under the
  workspace; the evidence bundle is written only when an evidence directory
  is configured.
"""

from __future__ import annotations

import dataclasses
import time
from datetime import UTC, datetime
from pathlib import Path

import structlog

from dod_gate.audit.evidence import EvidenceBundleGenerator
from dod_gate.audit.git_metadata import GitMetadataProvider, GitMetadataSource
from dod_gate.audit.receipt import ReceiptGenerator
from dod_gate.audit.report import ReportGenerator
from dod_gate.checks.base import CheckContext, CheckRegistry
from dod_gate.config.profile import DodProfile, default_dev
from dod_gate.constants import RECEIPTS_DIR, REPORTS_DIR, TIMESTAMP_FORMAT
from dod_gate.domain.models import (
    ArtifactPaths,
    DodCheckResult,
    DodResult,
    DodValidationResult,
    ValidationMode,
)
from dod_gate.errors import WorkspaceError
from dod_gate.evaluation.scoring import compute_all_category_scores, compute_readiness_score
from dod_gate.evaluation.verdict import compute_final_verdict
from dod_gate.execution.executor import CheckExecutor
from dod_gate.observability.events import EventBus
from dod_gate.utils.fs import unique_path

logger = structlog.get_logger(__name__)

_DEFAULT_GIT_PROVIDER = object()


class DodValidator:
    """Run the readiness gate for one registry and profile."""

    def __init__(
        self,
        registry: CheckRegistry,
        profile: DodProfile | None = None,
        *,
        receipts_dir: str | Path | None = None,
        reports_dir: str | Path | None = None,
        evidence_dir: str | Path | None = None,
        compress_evidence: bool = False,
        event_bus: EventBus | None = None,
        git_provider: GitMetadataSource | None | object = _DEFAULT_GIT_PROVIDER,
        report_generator: ReportGenerator | None = None,
    ) -> None:
        self._profile = (profile or default_dev()).assert_valid()
        self._executor = CheckExecutor(registry, self._profile, event_bus=event_bus)
        self._receipts_dir = None if receipts_dir is None else Path(receipts_dir)
        self._reports_dir = None if reports_dir is None else Path(reports_dir)
        self._evidence_dir = None if evidence_dir is None else Path(evidence_dir)
        self._compress_evidence = compress_evidence
        provider: GitMetadataSource | None = (
            GitMetadataProvider()
            if git_provider is _DEFAULT_GIT_PROVIDER
            else git_provider  # type: ignore[assignment]
        )
        self._receipts = ReceiptGenerator(git_provider=provider)
        self._reports = report_generator or ReportGenerator()

    @property
    def profile(self) -> DodProfile:
        return self._profile

    @property
    def executor(self) -> CheckExecutor:
        return self._executor

    @property
    def receipt_generator(self) -> ReceiptGenerator:
        return self._receipts

    def create_context(
        self,
        workspace_root: str | Path,
        mode: ValidationMode = ValidationMode.FAST,
    ) -> CheckContext:
        root = Path(workspace_root)
        if not root.exists():
            raise WorkspaceError(f"workspace root does not exist: {root}")
        if not root.is_dir():
            raise WorkspaceError(f"workspace root is not a directory: {root}")
        # The context ceiling never undercuts a profile bucket.
        ceiling = max(self._profile.timeouts_ms.to_dict().values())
        return CheckContext(workspace_root=root, mode=mode, timeout_ms=ceiling)

    async def validate(self, workspace_root: str | Path) -> DodResult:
        return await self.validate_with_mode(workspace_root, ValidationMode.FAST)

    async def validate_with_mode(
        self, workspace_root: str | Path, mode: ValidationMode
    ) -> DodResult:
        context = self.create_context(workspace_root, mode)
        timestamp = datetime.now(tz=UTC)
        start = time.perf_counter()
        logger.info(
            "validation_started",
            profile=self._profile.name,
            workspace=context.workspace_root.as_posix(),
            mode=mode.value,
        )

        checks = await self._executor.execute_all(context)
        if not checks:
            logger.warning("validation_without_checks", profile=self._profile.name)

        category_scores = compute_all_category_scores(checks, self._profile.category_weights)
        score = compute_readiness_score(category_scores)
        verdict = compute_final_verdict(checks, score, self._profile.thresholds)
        duration_ms = int(round(max(time.perf_counter() - start, 0.0) * 1000))

        logger.info(
            "validation_completed",
            verdict=verdict.value,
            score=score,
            duration_ms=duration_ms,
        )
        return DodResult(
            verdict=verdict,
            score=score,
            checks=tuple(checks),
            category_scores=category_scores,
            duration_ms=duration_ms,
            profile_name=self._profile.name,
            mode=mode,
            timestamp=timestamp,
        )

    async def validate_single(
        self, workspace_root: str | Path, check_id: str
    ) -> DodCheckResult:
        context = self.create_context(workspace_root)
        return await self._executor.execute_one(check_id, context)

    async def validate_and_record(
        self,
        workspace_root: str | Path,
        mode: ValidationMode = ValidationMode.FAST,
    ) -> tuple[DodResult, DodValidationResult]:
        """Validate, then write the report and receipt (and the evidence bundle when configured)."""

        root = Path(workspace_root)
        result = await self.validate_with_mode(root, mode)

        stem = result.timestamp.astimezone(UTC).strftime(TIMESTAMP_FORMAT)
        receipts_dir = self._receipts_dir or root / RECEIPTS_DIR
        reports_dir = self._reports_dir or root / REPORTS_DIR
        artifacts = ArtifactPaths(
            receipt_path=unique_path(receipts_dir, stem, ".json"),
            report_path=unique_path(reports_dir, stem, ".md"),
        )
        validation = result.to_validation_result(artifacts)

        receipt = self._receipts.generate(validation, root)
        self._receipts.write(receipt, artifacts.receipt_path)
        self._reports.write(validation, artifacts.report_path)

        if self._evidence_dir is not None:
            bundles = EvidenceBundleGenerator(self._evidence_dir, compress=self._compress_evidence)
            bundle_path = bundles.generate(validation, root)
            validation = dataclasses.replace(
                validation,
                artifacts=dataclasses.replace(artifacts, bundle_path=bundle_path),
            )

        logger.info(
            "validation_recorded",
            receipt=artifacts.receipt_path.as_posix(),
            report=artifacts.report_path.as_posix(),
            bundle=None
            if validation.artifacts.bundle_path is None
            else validation.artifacts.bundle_path.as_posix(),
        )
        return result, validation


__all__ = ["DodValidator"]
