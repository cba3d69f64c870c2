"""
dod-gate — unit tests for profile loading

Purpose
- Validate TOML/YAML loading, ``DOD_*`` environment overrides, name
  resolution with built-in fallback, and load error classification.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from dod_gate.config.loader import (
    apply_env_overrides,
    env_name_for_path,
    load_by_name,
    load_from_file,
    resolve_profile,
)
from dod_gate.config.profile import ParallelismMode, default_dev
from dod_gate.domain.models import CheckCategory
from dod_gate.errors import ProfileError, ProfileLoadError, ProfileValidationError

_TOML_PROFILE = """
name = "ci-gate"
description = "CI profile"
required_checks = ["BUILD_CHECK", "TEST_UNIT"]
optional_checks = ["BUILD_CLIPPY"]
parallelism = "serial"

[category_weights]
BuildCorrectness = 0.5
TestTruth = 0.5

[thresholds]
min_readiness_score = 80.0
max_warnings = 3

[timeouts_ms]
build = 1000
tests = 2000
"""

_YAML_PROFILE = """
name: yaml-gate
required_checks:
  - BUILD_CHECK
category_weights:
  build_correctness: 1.0
parallelism:
  mode: fixed
  workers: 2
"""


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_toml_profile(tmp_path: Path) -> None:
    profile = load_from_file(_write(tmp_path / "ci.toml", _TOML_PROFILE), environ={})

    assert profile.name == "ci-gate"
    assert profile.required_checks == ("BUILD_CHECK", "TEST_UNIT")
    assert profile.category_weights == {
        CheckCategory.BUILD_CORRECTNESS: 0.5,
        CheckCategory.TEST_TRUTH: 0.5,
    }
    assert profile.thresholds.min_readiness_score == 80.0
    assert profile.timeouts_ms.build == 1000
    assert profile.timeouts_ms.default == 60_000
    assert profile.parallelism.mode is ParallelismMode.SERIAL


def test_load_yaml_profile(tmp_path: Path) -> None:
    profile = load_from_file(_write(tmp_path / "gate.yml", _YAML_PROFILE), environ={})

    assert profile.name == "yaml-gate"
    assert profile.parallelism.mode is ParallelismMode.FIXED
    assert profile.parallelism.worker_count() == 2


def test_env_overrides_are_typed(tmp_path: Path) -> None:
    profile = load_from_file(
        _write(tmp_path / "ci.toml", _TOML_PROFILE),
        environ={
            "DOD_THRESHOLDS_MIN_READINESS_SCORE": "95",
            "DOD_THRESHOLDS_REQUIRE_ALL_TESTS_PASS": "yes",
            "DOD_TIMEOUTS_MS_GGEN": "42",
            "DOD_PARALLELISM_MODE": "fixed",
            "DOD_PARALLELISM_WORKERS": "4",
            "UNRELATED": "ignored",
        },
    )

    assert profile.thresholds.min_readiness_score == 95.0
    assert profile.thresholds.require_all_tests_pass is True
    assert profile.timeouts_ms.ggen == 42
    assert profile.parallelism.worker_count() == 4


@pytest.mark.parametrize(
    ("env_name", "raw"),
    [
        ("DOD_THRESHOLDS_MAX_WARNINGS", "lots"),
        ("DOD_THRESHOLDS_MIN_READINESS_SCORE", "high"),
        ("DOD_THRESHOLDS_FAIL_ON_CLIPPY_WARNINGS", "maybe"),
    ],
)
def test_env_override_coercion_errors(env_name: str, raw: str) -> None:
    with pytest.raises(ProfileLoadError) as excinfo:
        apply_env_overrides(default_dev().to_dict(), {env_name: raw})

    assert env_name in str(excinfo.value)


def test_apply_env_overrides_does_not_mutate_payload() -> None:
    payload = default_dev().to_dict()

    merged = apply_env_overrides(payload, {"DOD_TIMEOUTS_MS_BUILD": "5"})

    assert merged["timeouts_ms"]["build"] == 5
    assert payload["timeouts_ms"]["build"] == 600_000  # type: ignore[index]


def test_env_name_for_path() -> None:
    assert env_name_for_path(("thresholds", "min_readiness_score")) == (
        "DOD_THRESHOLDS_MIN_READINESS_SCORE"
    )


def test_invalid_weights_raise_validation_error(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "bad.toml",
        'name = "bad"\n[category_weights]\nbuild_correctness = 0.4\n',
    )

    with pytest.raises(ProfileValidationError) as excinfo:
        load_from_file(path, environ={})

    assert [issue.path for issue in excinfo.value.issues] == ["category_weights"]


@pytest.mark.parametrize(
    ("filename", "text"),
    [
        ("broken.toml", "name = \n"),
        ("broken.yaml", "name: [unterminated\n"),
        ("list.yaml", "- just\n- a list\n"),
        ("profile.json", "{}"),
    ],
)
def test_parse_failures_raise_load_error(tmp_path: Path, filename: str, text: str) -> None:
    with pytest.raises(ProfileLoadError):
        load_from_file(_write(tmp_path / filename, text), environ={})


def test_missing_file_raises_load_error(tmp_path: Path) -> None:
    with pytest.raises(ProfileLoadError):
        load_from_file(tmp_path / "absent.toml", environ={})


def test_load_by_name_searches_supported_suffixes(tmp_path: Path) -> None:
    _write(tmp_path / "yaml-gate.yaml", _YAML_PROFILE)

    assert load_by_name("yaml-gate", tmp_path, environ={}).name == "yaml-gate"
    with pytest.raises(ProfileLoadError):
        load_by_name("ci-gate", tmp_path, environ={})


def test_resolve_prefers_file_then_builtin(tmp_path: Path) -> None:
    _write(tmp_path / "ggen-mcp-default.toml", _TOML_PROFILE)

    from_file = resolve_profile("ggen-mcp-default", tmp_path, environ={})
    builtin = resolve_profile("enterprise-strict", tmp_path, environ={})

    assert from_file.name == "ci-gate"
    assert builtin.name == "enterprise-strict"
    assert builtin.thresholds.min_readiness_score == 90.0


def test_resolve_builtin_applies_env_overrides() -> None:
    profile = resolve_profile(
        "ggen-mcp-default", environ={"DOD_THRESHOLDS_MAX_WARNINGS": "0"}
    )

    assert profile.thresholds.max_warnings == 0


def test_resolve_unknown_profile() -> None:
    with pytest.raises(ProfileError) as excinfo:
        resolve_profile("does-not-exist", environ={})

    assert "ggen-mcp-default" in str(excinfo.value)
