"""Dependency-aware, bounded-concurrency check execution."""

from dod_gate.execution.executor import CheckExecutor, ExecutionPlan

__all__ = [
    "CheckExecutor",
    "ExecutionPlan",
]
