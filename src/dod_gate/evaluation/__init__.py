"""Scoring, verdict and remediation engines (pure functions over check results)."""

from dod_gate.evaluation.remediation import (
    Priority,
    RemediationGenerator,
    RemediationSuggestion,
    generate_remediation,
)
from dod_gate.evaluation.scoring import (
    compute_all_category_scores,
    compute_category_score,
    compute_readiness_score,
)
from dod_gate.evaluation.verdict import (
    compute_final_verdict,
    compute_verdict,
    get_fatal_failures,
)

__all__ = [
    "Priority",
    "RemediationGenerator",
    "RemediationSuggestion",
    "compute_all_category_scores",
    "compute_category_score",
    "compute_final_verdict",
    "compute_readiness_score",
    "compute_verdict",
    "generate_remediation",
    "get_fatal_failures",
]
