"""Pure verdict functions: the fatal-failure gate and the tri-state final verdict."""

from __future__ import annotations

from collections.abc import Sequence

from dod_gate.config.profile import ThresholdConfig
from dod_gate.domain.models import DodCheckResult, OverallVerdict, Verdict


def get_fatal_failures(results: Sequence[DodCheckResult]) -> list[DodCheckResult]:
    return [result for result in results if result.is_fatal_failure]


def compute_verdict(results: Sequence[DodCheckResult]) -> OverallVerdict:
    """NotReady iff at least one result is a fatal failure; non-fatal failures never block."""

    if any(result.is_fatal_failure for result in results):
        return OverallVerdict.NOT_READY
    return OverallVerdict.READY


def compute_final_verdict(
    results: Sequence[DodCheckResult],
    readiness_score: float,
    thresholds: ThresholdConfig,
) -> Verdict:
    if compute_verdict(results) is OverallVerdict.NOT_READY:
        return Verdict.FAIL
    if readiness_score >= thresholds.min_readiness_score:
        return Verdict.PASS
    return Verdict.PARTIAL_PASS


__all__ = [
    "compute_final_verdict",
    "compute_verdict",
    "get_fatal_failures",
]
