"""Stable constants shared across the readiness gate."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Persisted receipt contract.
RECEIPT_VERSION: Final[str] = "1.0.0"
TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d-%H%M%S"

# Default output locations (relative to the workspace root unless overridden).
RECEIPTS_DIR: Final[PurePosixPath] = PurePosixPath("dod-receipts")
REPORTS_DIR: Final[PurePosixPath] = PurePosixPath("dod-reports")
EVIDENCE_DIR: Final[PurePosixPath] = PurePosixPath("dod-evidence")
PROFILES_DIR: Final[PurePosixPath] = PurePosixPath("profiles")

# Scoring.
MAX_SCORE: Final[float] = 100.0
WARNING_PENALTY: Final[float] = 2.0
WEIGHT_SUM_TOLERANCE: Final[float] = 0.001

# Execution.
DEFAULT_CONTEXT_TIMEOUT_MS: Final[int] = 120_000

# Evidence bundles.
MIN_FREE_BYTES: Final[int] = 100 * 1024 * 1024
DEFAULT_ARTIFACT_SNAPSHOTS: Final[tuple[str, ...]] = (
    "Cargo.lock",
    "Cargo.toml",
    "ggen.toml",
    "ontology/mcp-domain.ttl",
    "pyproject.toml",
    "uv.lock",
)

__all__ = [
    "DEFAULT_ARTIFACT_SNAPSHOTS",
    "DEFAULT_CONTEXT_TIMEOUT_MS",
    "EVIDENCE_DIR",
    "MAX_SCORE",
    "MIN_FREE_BYTES",
    "PROFILES_DIR",
    "RECEIPTS_DIR",
    "RECEIPT_VERSION",
    "REPORTS_DIR",
    "TIMESTAMP_FORMAT",
    "WARNING_PENALTY",
    "WEIGHT_SUM_TOLERANCE",
]
