"""Pluggable check contract, context and registry."""

from dod_gate.checks.base import (
    CHECK_ID_PATTERN,
    CheckContext,
    CheckOutcome,
    CheckRegistry,
    DodCheck,
    FunctionCheck,
    build_result,
    is_valid_check_id,
    should_skip,
)

__all__ = [
    "CHECK_ID_PATTERN",
    "CheckContext",
    "CheckOutcome",
    "CheckRegistry",
    "DodCheck",
    "FunctionCheck",
    "build_result",
    "is_valid_check_id",
    "should_skip",
]
