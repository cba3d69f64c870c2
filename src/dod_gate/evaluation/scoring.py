"""Pure scoring functions: per-category scores and the weighted readiness score."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from dod_gate.constants import MAX_SCORE, WARNING_PENALTY
from dod_gate.domain.models import CategoryScore, CheckCategory, CheckStatus, DodCheckResult


def compute_category_score(
    category: CheckCategory,
    results: Sequence[DodCheckResult],
    weight: float = 0.0,
) -> CategoryScore:
    """Score one category from its pass ratio minus a flat penalty per warning.

    Warned and skipped results are excluded from the ratio; a category with no
    passed or failed results scores 0.0.
    """

    passed = failed = warned = skipped = 0
    for result in results:
        if result.category is not category:
            continue
        if result.status is CheckStatus.PASS:
            passed += 1
        elif result.status is CheckStatus.FAIL:
            failed += 1
        elif result.status is CheckStatus.WARN:
            warned += 1
        else:
            skipped += 1

    denominator = passed + failed
    if denominator == 0:
        score = 0.0
    else:
        score = max(0.0, passed / denominator * MAX_SCORE - WARNING_PENALTY * warned)

    return CategoryScore(
        category=category,
        score=score,
        weight=weight,
        checks_passed=passed,
        checks_failed=failed,
        checks_warned=warned,
        checks_skipped=skipped,
    )


def compute_all_category_scores(
    results: Sequence[DodCheckResult],
    weights: Mapping[CheckCategory, float],
) -> dict[CheckCategory, CategoryScore]:
    """Score every category that has at least one result, in category order."""

    present = {result.category for result in results}
    return {
        category: compute_category_score(category, results, float(weights.get(category, 0.0)))
        for category in CheckCategory
        if category in present
    }


def compute_readiness_score(category_scores: Mapping[CheckCategory, CategoryScore]) -> float:
    """Sum of ``score * weight`` over the present categories, without renormalization."""

    return sum((score.weighted_score for score in category_scores.values()), 0.0)


__all__ = [
    "compute_all_category_scores",
    "compute_category_score",
    "compute_readiness_score",
]
