"""
dod-gate — unit tests for scoring and verdicts

Purpose
- Validate per-category scores (pass ratio, warning penalty, clamping), the
  weighted readiness score, and the fatal-failure gate.

Functional requirements
- Property tests pin the score bounds for arbitrary result mixes.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dod_gate.config.profile import ThresholdConfig, default_dev
from dod_gate.domain.models import (
    CategoryScore,
    CheckCategory,
    CheckSeverity,
    CheckStatus,
    DodCheckResult,
    OverallVerdict,
    Verdict,
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

_counter = iter(range(1_000_000))


def _result(
    status: CheckStatus,
    category: CheckCategory = CheckCategory.BUILD_CORRECTNESS,
    severity: CheckSeverity = CheckSeverity.FATAL,
) -> DodCheckResult:
    return DodCheckResult(
        id=f"CHECK_{next(_counter)}",
        category=category,
        status=status,
        severity=severity,
        message=status.value,
    )


def _many(status: CheckStatus, count: int, **kwargs: object) -> list[DodCheckResult]:
    return [_result(status, **kwargs) for _ in range(count)]  # type: ignore[arg-type]


def test_category_score_is_pass_ratio() -> None:
    results = _many(CheckStatus.PASS, 3) + _many(CheckStatus.FAIL, 1)

    score = compute_category_score(CheckCategory.BUILD_CORRECTNESS, results, 0.5)

    assert score.score == pytest.approx(75.0)
    assert score.weighted_score == pytest.approx(37.5)
    assert (score.checks_passed, score.checks_failed) == (3, 1)


def test_warnings_are_penalized_not_counted() -> None:
    results = _many(CheckStatus.PASS, 2) + _many(CheckStatus.WARN, 3) + _many(CheckStatus.SKIP, 4)

    score = compute_category_score(CheckCategory.BUILD_CORRECTNESS, results)

    assert score.score == pytest.approx(94.0)
    assert score.checks_warned == 3
    assert score.checks_skipped == 4


def test_mixed_category_score() -> None:
    results = (
        _many(CheckStatus.PASS, 2) + _many(CheckStatus.FAIL, 1) + _many(CheckStatus.WARN, 1)
    )

    score = compute_category_score(CheckCategory.BUILD_CORRECTNESS, results)

    assert score.score == pytest.approx(64.67, abs=0.01)


def test_readiness_score_sums_weighted_categories() -> None:
    scores = {
        category: CategoryScore(category, score, weight)
        for category, score, weight in (
            (CheckCategory.BUILD_CORRECTNESS, 100.0, 0.25),
            (CheckCategory.TEST_TRUTH, 50.0, 0.25),
            (CheckCategory.GGEN_PIPELINE, 100.0, 0.5),
        )
    }

    assert compute_readiness_score(scores) == pytest.approx(87.5, abs=0.1)


def test_score_clamps_at_zero() -> None:
    results = _many(CheckStatus.FAIL, 1) + _many(CheckStatus.WARN, 5)

    assert compute_category_score(CheckCategory.BUILD_CORRECTNESS, results).score == 0.0


def test_category_with_only_warnings_or_skips_scores_zero() -> None:
    results = _many(CheckStatus.WARN, 2) + _many(CheckStatus.SKIP, 1)

    assert compute_category_score(CheckCategory.BUILD_CORRECTNESS, results).score == 0.0
    assert compute_category_score(CheckCategory.TEST_TRUTH, []).score == 0.0


def test_other_categories_are_ignored() -> None:
    results = _many(CheckStatus.PASS, 1) + _many(
        CheckStatus.FAIL, 3, category=CheckCategory.TEST_TRUTH
    )

    assert compute_category_score(CheckCategory.BUILD_CORRECTNESS, results).score == 100.0


def test_all_category_scores_cover_present_categories_in_order() -> None:
    results = (
        _many(CheckStatus.PASS, 1, category=CheckCategory.TEST_TRUTH)
        + _many(CheckStatus.PASS, 1, category=CheckCategory.WORKSPACE_INTEGRITY)
    )

    scores = compute_all_category_scores(results, default_dev().category_weights)

    assert list(scores) == [CheckCategory.WORKSPACE_INTEGRITY, CheckCategory.TEST_TRUTH]
    assert scores[CheckCategory.WORKSPACE_INTEGRITY].weight == 0.0
    assert scores[CheckCategory.TEST_TRUTH].weight == 0.25


def test_readiness_score_is_not_renormalized() -> None:
    weights = {CheckCategory.BUILD_CORRECTNESS: 0.6, CheckCategory.TEST_TRUTH: 0.4}
    results = _many(CheckStatus.PASS, 2)

    scores = compute_all_category_scores(results, weights)

    assert compute_readiness_score(scores) == pytest.approx(60.0)
    empty = compute_readiness_score({})
    assert empty == 0.0
    assert isinstance(empty, float)


@settings(max_examples=75, deadline=None)
@given(
    statuses=st.lists(st.sampled_from(list(CheckStatus)), max_size=30),
    weight=st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
)
def test_category_score_stays_within_bounds(statuses: list[CheckStatus], weight: float) -> None:
    results = [_result(status) for status in statuses]

    score = compute_category_score(CheckCategory.BUILD_CORRECTNESS, results, weight)

    assert 0.0 <= score.score <= 100.0
    assert 0.0 <= score.weighted_score <= 100.0


@settings(max_examples=50, deadline=None)
@given(
    statuses=st.lists(
        st.tuples(st.sampled_from(list(CheckStatus)), st.sampled_from(list(CheckCategory))),
        max_size=40,
    )
)
def test_readiness_score_bounded_for_valid_weights(
    statuses: list[tuple[CheckStatus, CheckCategory]],
) -> None:
    results = [_result(status, category) for status, category in statuses]

    scores = compute_all_category_scores(results, default_dev().category_weights)

    assert 0.0 <= compute_readiness_score(scores) <= 100.0 + 1e-9


def test_fatal_failure_blocks_regardless_of_score() -> None:
    results = _many(CheckStatus.PASS, 9) + [_result(CheckStatus.FAIL)]

    assert compute_verdict(results) is OverallVerdict.NOT_READY
    assert compute_final_verdict(results, 100.0, ThresholdConfig()) is Verdict.FAIL
    assert len(get_fatal_failures(results)) == 1


def test_non_fatal_failure_does_not_block() -> None:
    results = [
        _result(CheckStatus.PASS),
        _result(CheckStatus.FAIL, severity=CheckSeverity.WARNING),
        _result(CheckStatus.FAIL, severity=CheckSeverity.INFO),
    ]

    assert compute_verdict(results) is OverallVerdict.READY
    assert get_fatal_failures(results) == []


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (70.0, Verdict.PASS),
        (99.0, Verdict.PASS),
        (69.99, Verdict.PARTIAL_PASS),
        (0.0, Verdict.PARTIAL_PASS),
    ],
)
def test_final_verdict_threshold_is_inclusive(score: float, expected: Verdict) -> None:
    results = [_result(CheckStatus.PASS)]

    assert compute_final_verdict(results, score, ThresholdConfig(min_readiness_score=70.0)) is (
        expected
    )


def test_empty_results_are_ready_but_partial() -> None:
    assert compute_verdict([]) is OverallVerdict.READY
    assert compute_final_verdict([], 0.0, ThresholdConfig()) is Verdict.PARTIAL_PASS
