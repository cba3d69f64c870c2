"""
dod-gate — profile loader

Purpose
- Load validation profiles from TOML or YAML files, apply ``DOD_*``
  environment overrides, and validate the result before use.

Functional requirements
- Parse failures raise ``ProfileLoadError``; schema or invariant failures raise
  ``ProfileValidationError``. Both derive from ``ProfileError``.
- Overrides address scalar fields as ``DOD_<SECTION>_<FIELD>`` and are coerced
  to the type of the field they replace.

Non-functional requirements
- Loading is deterministic; the same file and environment yield the same profile.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final, Literal

import structlog
import yaml

from dod_gate.config.profile import BUILTIN_PROFILES, DodProfile
from dod_gate.errors import ProfileLoadError

ENV_PREFIX: Final[str] = "DOD_"
TOML_SUFFIXES: Final[frozenset[str]] = frozenset({".toml"})
YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

ValueKind = Literal["str", "int", "float", "bool"]

# Scalar profile fields that environment variables may override.
_OVERRIDABLE: Final[dict[tuple[str, ...], ValueKind]] = {
    ("description",): "str",
    ("thresholds", "min_readiness_score"): "float",
    ("thresholds", "max_warnings"): "int",
    ("thresholds", "require_all_tests_pass"): "bool",
    ("thresholds", "fail_on_clippy_warnings"): "bool",
    ("timeouts_ms", "build"): "int",
    ("timeouts_ms", "tests"): "int",
    ("timeouts_ms", "ggen"): "int",
    ("timeouts_ms", "default"): "int",
    ("parallelism", "mode"): "str",
    ("parallelism", "workers"): "int",
}

logger = structlog.get_logger(__name__)


def load_from_file(
    path: str | Path,
    *,
    environ: Mapping[str, str] | None = None,
) -> DodProfile:
    """Load, override and validate a profile file (``.toml``, ``.yaml`` or ``.yml``)."""

    resolved = Path(path).expanduser().resolve()
    payload = _read_profile_payload(resolved)
    env_map = dict(os.environ if environ is None else environ)
    overridden = apply_env_overrides(payload, env_map)
    profile = DodProfile.from_dict(overridden).assert_valid()
    logger.debug("profile_loaded", path=resolved.as_posix(), profile=profile.name)
    return profile


def load_by_name(
    name: str,
    profiles_dir: str | Path,
    *,
    environ: Mapping[str, str] | None = None,
) -> DodProfile:
    """Load ``<profiles_dir>/<name>.toml`` (or ``.yaml``/``.yml``)."""

    directory = Path(profiles_dir)
    for suffix in (".toml", ".yaml", ".yml"):
        candidate = directory / f"{name}{suffix}"
        if candidate.is_file():
            return load_from_file(candidate, environ=environ)
    raise ProfileLoadError(f"profile {name!r} not found in {directory}")


def resolve_profile(
    name: str,
    profiles_dir: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> DodProfile:
    """Resolve a profile file by name, falling back to the built-in profiles."""

    if profiles_dir is not None:
        directory = Path(profiles_dir)
        if any((directory / f"{name}{suffix}").is_file() for suffix in (".toml", ".yaml", ".yml")):
            return load_by_name(name, directory, environ=environ)
    factory = BUILTIN_PROFILES.get(name)
    if factory is None:
        known = ", ".join(sorted(BUILTIN_PROFILES))
        raise ProfileLoadError(f"unknown profile {name!r}; built-in profiles: [{known}]")
    payload = factory().to_dict()
    env_map = dict(os.environ if environ is None else environ)
    return DodProfile.from_dict(apply_env_overrides(payload, env_map)).assert_valid()


def apply_env_overrides(
    payload: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Return a copy of ``payload`` with ``DOD_*`` overrides applied."""

    merged = _deep_copy_mapping(payload)
    if isinstance(merged.get("parallelism"), str):
        merged["parallelism"] = {"mode": merged["parallelism"]}

    for field_path, kind in _OVERRIDABLE.items():
        env_name = env_name_for_path(field_path)
        raw = environ.get(env_name)
        if raw is None:
            continue
        value = _coerce_env(raw, kind, env_name, field_path)
        _set_nested(merged, field_path, value)
        logger.debug("profile_override_applied", env=env_name, field=".".join(field_path))
    return merged


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_profile_payload(path: Path) -> dict[str, Any]:
    suffix = path.suffix.lower()
    if suffix not in TOML_SUFFIXES | YAML_SUFFIXES:
        raise ProfileLoadError(f"unsupported profile format {suffix!r}: {path}")
    if not path.is_file():
        raise ProfileLoadError(f"profile file not found: {path}")

    try:
        if suffix in TOML_SUFFIXES:
            with path.open("rb") as handle:
                parsed: object = tomllib.load(handle)
        else:
            with path.open("r", encoding="utf-8") as handle:
                parsed = yaml.safe_load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ProfileLoadError(f"invalid TOML in {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ProfileLoadError(f"invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ProfileLoadError(f"unable to read profile file {path}: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ProfileLoadError(f"profile root must be an object: {path}")
    return parsed


def _coerce_env(raw: str, kind: ValueKind, env_name: str, path: tuple[str, ...]) -> object:
    value = raw.strip()
    dotted = ".".join(path)
    if kind == "str":
        return value
    if kind == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ProfileLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    if kind == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ProfileLoadError(f"{env_name} -> {dotted} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ProfileLoadError(
        f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _deep_copy_mapping(source: Mapping[str, object]) -> dict[str, Any]:
    copied: dict[str, Any] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            copied[key] = _deep_copy_mapping(value)
        elif isinstance(value, list):
            copied[key] = list(value)
        else:
            copied[key] = value
    return copied


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


__all__ = [
    "ENV_PREFIX",
    "apply_env_overrides",
    "env_name_for_path",
    "load_by_name",
    "load_from_file",
    "resolve_profile",
]
