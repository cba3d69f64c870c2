"""Validation profile schema, built-in profiles and file loading."""

from dod_gate.config.loader import (
    apply_env_overrides,
    load_by_name,
    load_from_file,
    resolve_profile,
)
from dod_gate.config.profile import (
    BUILTIN_PROFILES,
    DodProfile,
    Parallelism,
    ParallelismMode,
    ThresholdConfig,
    TimeoutConfig,
    default_dev,
    enterprise_strict,
)

__all__ = [
    "BUILTIN_PROFILES",
    "DodProfile",
    "Parallelism",
    "ParallelismMode",
    "ThresholdConfig",
    "TimeoutConfig",
    "apply_env_overrides",
    "default_dev",
    "enterprise_strict",
    "load_by_name",
    "load_from_file",
    "resolve_profile",
]
