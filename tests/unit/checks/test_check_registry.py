"""
dod-gate — unit tests for the check registry and check adapters

Purpose
- Validate registration order, replacement semantics, freezing, and the
  ``FunctionCheck`` adapter.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from dod_gate.checks.base import (
    CheckContext,
    CheckRegistry,
    DodCheck,
    FunctionCheck,
    build_result,
    is_valid_check_id,
    should_skip,
)
from dod_gate.domain.models import CheckCategory, CheckSeverity, CheckStatus, DodCheckResult
from dod_gate.errors import ConfigurationError, UnknownCheckError


def _passing(check_id: str, category: CheckCategory = CheckCategory.BUILD_CORRECTNESS) -> FunctionCheck:
    def run(_: CheckContext) -> DodCheckResult:
        return DodCheckResult(
            id=check_id,
            category=category,
            status=CheckStatus.PASS,
            severity=CheckSeverity.FATAL,
            message="ok",
        )

    return FunctionCheck(
        id=check_id,
        category=category,
        severity=CheckSeverity.FATAL,
        run=run,
        description=f"{check_id} description",
    )


def test_function_check_satisfies_protocol() -> None:
    assert isinstance(_passing("BUILD_CHECK"), DodCheck)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("BUILD_CHECK", True),
        ("G0_WORKSPACE", True),
        ("build_check", False),
        ("0BUILD", False),
        ("BUILD-CHECK", False),
        ("", False),
        (7, False),
    ],
)
def test_check_id_format(value: object, expected: bool) -> None:
    assert is_valid_check_id(value) is expected


def test_registration_keeps_insertion_order() -> None:
    registry = CheckRegistry([_passing("B_CHECK"), _passing("A_CHECK"), _passing("C_CHECK")])

    assert registry.ids() == ("B_CHECK", "A_CHECK", "C_CHECK")
    assert len(registry) == 3
    assert "A_CHECK" in registry
    assert "Z_CHECK" not in registry


def test_reregistration_is_last_write_wins_and_keeps_slot() -> None:
    registry = CheckRegistry([_passing("A_CHECK"), _passing("B_CHECK")])
    replacement = _passing("A_CHECK", CheckCategory.TEST_TRUTH)

    registry.register(replacement)

    assert registry.ids() == ("A_CHECK", "B_CHECK")
    assert registry.get("A_CHECK") is replacement
    assert registry.position("A_CHECK") == 0


def test_get_by_category_returns_registration_order() -> None:
    registry = CheckRegistry(
        [
            _passing("TEST_UNIT", CheckCategory.TEST_TRUTH),
            _passing("BUILD_FMT"),
            _passing("TEST_INTEGRATION", CheckCategory.TEST_TRUTH),
            _passing("BUILD_CHECK"),
        ]
    )

    assert [check.id for check in registry.get_by_category(CheckCategory.TEST_TRUTH)] == [
        "TEST_UNIT",
        "TEST_INTEGRATION",
    ]
    assert registry.get_by_category(CheckCategory.GGEN_PIPELINE) == []


def test_require_raises_configuration_error_for_unknown_id() -> None:
    registry = CheckRegistry()

    with pytest.raises(UnknownCheckError) as excinfo:
        registry.require("MISSING_CHECK")

    assert isinstance(excinfo.value, ConfigurationError)
    assert isinstance(excinfo.value, KeyError)
    assert "MISSING_CHECK" in str(excinfo.value)


def test_frozen_registry_rejects_registration() -> None:
    registry = CheckRegistry([_passing("A_CHECK")])
    registry.freeze()

    assert registry.is_frozen
    with pytest.raises(RuntimeError):
        registry.register(_passing("B_CHECK"))


def test_register_rejects_non_checks_and_bad_ids() -> None:
    registry = CheckRegistry()

    with pytest.raises(TypeError):
        registry.register(object())  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        FunctionCheck(
            id="lowercase",
            category=CheckCategory.BUILD_CORRECTNESS,
            severity=CheckSeverity.INFO,
            run=lambda _: None,  # type: ignore[arg-type, return-value]
        )


def test_build_result_stamps_check_identity() -> None:
    check = _passing("GGEN_RENDER", CheckCategory.GGEN_PIPELINE)

    result = build_result(check, CheckStatus.WARN, "slow", remediation=["Profile templates"])

    assert result.id == "GGEN_RENDER"
    assert result.category is CheckCategory.GGEN_PIPELINE
    assert result.severity is CheckSeverity.FATAL
    assert result.remediation == ("Profile templates",)


def test_should_skip_uses_optional_hook() -> None:
    skipping = FunctionCheck(
        id="DEPLOY_DOCKER_BUILD",
        category=CheckCategory.DEPLOYMENT_READINESS,
        severity=CheckSeverity.WARNING,
        run=lambda _: None,  # type: ignore[arg-type, return-value]
        skipped_profiles=frozenset({"ggen-mcp-default"}),
    )

    class NoHook:
        id = "NO_HOOK"

    assert should_skip(skipping, "ggen-mcp-default")
    assert not should_skip(skipping, "enterprise-strict")
    assert not should_skip(NoHook(), "ggen-mcp-default")  # type: ignore[arg-type]


def test_check_context_validation_and_helpers(tmp_path: Path) -> None:
    context = CheckContext(workspace_root=str(tmp_path))  # type: ignore[arg-type]

    assert context.workspace_root == tmp_path
    assert context.with_timeout(5).timeout_ms == 5
    assert context.with_metadata("ci", "true").metadata == {"ci": "true"}
    assert context.metadata == {}
    with pytest.raises(ValueError):
        CheckContext(workspace_root=tmp_path, timeout_ms=0)
