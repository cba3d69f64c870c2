"""
dod-gate — error taxonomy

Purpose
- One exception hierarchy for every run-level failure the gate can surface.

Functional requirements
- Configuration problems abort a run before any check executes.
- Audit infrastructure problems (receipt/evidence I/O) are never swallowed.
- Per-check failures are data, not exceptions; nothing here models them.
"""

from __future__ import annotations

from dataclasses import dataclass


class DodError(Exception):
    """Base error for the readiness gate."""


class ConfigurationError(DodError, ValueError):
    """Raised when the check set cannot be resolved into a runnable plan."""


class UnknownCheckError(ConfigurationError, KeyError):
    """Raised when a profile or dependency names a check that is not registered."""

    def __init__(self, check_id: str, *, referenced_by: str | None = None) -> None:
        self.check_id = check_id
        self.referenced_by = referenced_by
        if referenced_by is None:
            message = f"unknown check id: {check_id!r}"
        else:
            message = f"unknown check id {check_id!r} referenced by {referenced_by!r}"
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0])


class DependencyCycleError(ConfigurationError):
    """Raised when check dependencies cannot be ordered."""

    def __init__(self, unresolved: tuple[str, ...]) -> None:
        self.unresolved = unresolved
        super().__init__(
            "unable to resolve check dependencies; cycle among: " + ", ".join(unresolved)
        )


@dataclass(frozen=True, slots=True)
class ProfileValidationIssue:
    """One validation failure with a dotted profile path."""

    path: str
    message: str


class ProfileError(DodError, ValueError):
    """Base error for profile loading and validation."""


class ProfileValidationError(ProfileError):
    """Raised when a profile violates one or more invariants."""

    def __init__(self, issues: tuple[ProfileValidationIssue, ...] | list[ProfileValidationIssue]):
        normalized = tuple(issues)
        self.issues = normalized
        lines = [f"- {issue.path}: {issue.message}" for issue in normalized]
        super().__init__("invalid profile:\n" + "\n".join(lines))


class ProfileLoadError(ProfileError):
    """Raised when a profile file cannot be read, parsed or overridden."""


class WorkspaceError(DodError):
    """Raised when the workspace root is missing or not a directory."""


class AuditError(DodError):
    """Raised when the audit trail (receipts, reports, evidence) cannot be produced."""


class ReceiptError(AuditError):
    """Raised when a receipt cannot be saved or loaded."""


class EvidenceBundleError(AuditError):
    """Raised when an evidence bundle cannot be assembled."""


__all__ = [
    "AuditError",
    "ConfigurationError",
    "DependencyCycleError",
    "DodError",
    "EvidenceBundleError",
    "ProfileError",
    "ProfileLoadError",
    "ProfileValidationError",
    "ProfileValidationIssue",
    "ReceiptError",
    "UnknownCheckError",
    "WorkspaceError",
]
