"""
dod-gate — domain types

Purpose
- Enums and immutable result models shared by the executor, scoring, verdict,
  remediation, receipt and evidence stages.

Functional requirements
- Domain objects are side-effect free and serializable to plain dicts.
"""

from dod_gate.domain.models import (
    ArtifactPaths,
    CategoryScore,
    CheckCategory,
    CheckSeverity,
    CheckStatus,
    DodCheckResult,
    DodResult,
    DodValidationResult,
    Evidence,
    EvidenceKind,
    OverallVerdict,
    ValidationMode,
    ValidationSummary,
    Verdict,
)

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
