"""
dod-gate — remediation suggestions

Purpose
- Turn failing and warning check results into prioritized, actionable
  suggestions with optional one-line automation commands.

Functional requirements
- One suggestion per Fail/Warn result; Pass and Skip produce nothing.
- Priority derives from severity through a lookup table; checks listed as low
  impact drop to the Low tier.
- Output is ordered Critical → Low, keeping result order within a tier.

Non-functional requirements
- Titles, steps, automation commands and priorities are module-level data and
  can be replaced per generator without touching the algorithm.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Final

from dod_gate.domain.models import CheckSeverity, CheckStatus, DodCheckResult


class Priority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()


_PRIORITY_ORDER: Final[tuple[Priority, ...]] = (
    Priority.CRITICAL,
    Priority.HIGH,
    Priority.MEDIUM,
    Priority.LOW,
)

SEVERITY_PRIORITY: Final[Mapping[CheckSeverity, Priority]] = MappingProxyType(
    {
        CheckSeverity.FATAL: Priority.CRITICAL,
        CheckSeverity.WARNING: Priority.HIGH,
        CheckSeverity.INFO: Priority.MEDIUM,
    }
)

AUTOMATION_COMMANDS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "GIT_CLEAN": "git status",
        "SUBMODULES_INIT": "git submodule update --init --recursive",
        "CARGO_LOCK": "cargo update",
        "BUILD_FMT": "cargo fmt",
        "BUILD_CLIPPY": "cargo clippy --fix",
        "BUILD_CHECK": "cargo check",
        "TEST_UNIT": "cargo test",
        "TEST_INTEGRATION": "cargo test --test '*'",
        "TEST_PROPERTY": "cargo test property",
        "GGEN_DRY_RUN": "cargo make sync",
        "GGEN_RENDER": "cargo make sync --no-preview",
        "GGEN_VALIDATE": "cargo make sync-validate",
        "G8_SECRETS": "git-secrets --scan",
        "WHY_INTENT": "mkdir -p docs && touch docs/PRD.md",
        "G8_INTENT": "mkdir -p docs && touch docs/PRD.md",
        "DEPLOY_BUILD_RELEASE": "cargo build --release --locked",
        "DEPLOY_DOCKER_BUILD": "docker build -t app:latest .",
    }
)

SUGGESTION_TITLES: Final[Mapping[str, str]] = MappingProxyType(
    {
        "GIT_CLEAN": "Clean git workspace",
        "SUBMODULES_INIT": "Initialize git submodules",
        "CARGO_LOCK": "Update Cargo.lock",
        "WHY_INTENT": "Document intent (WHY)",
        "G8_INTENT": "Document intent (WHY)",
        "WHAT_TOOL_REGISTRY": "Align tool registry with OpenAPI",
        "BUILD_FMT": "Fix code formatting",
        "BUILD_CLIPPY": "Fix clippy warnings",
        "BUILD_CHECK": "Fix compilation errors",
        "TEST_UNIT": "Fix failing unit tests",
        "TEST_INTEGRATION": "Fix integration tests",
        "TEST_PROPERTY": "Fix property tests",
        "GGEN_DRY_RUN": "Fix ggen dry-run validation",
        "GGEN_RENDER": "Fix ggen rendering",
        "GGEN_VALIDATE": "Fix ggen validation",
        "G8_SECRETS": "Remove exposed secrets",
        "G8_BOUNDS": "Fix bounds validation",
        "DEPLOY_BUILD_RELEASE": "Fix release build",
        "DEPLOY_DOCKER_BUILD": "Fix Docker build",
    }
)

# Used only when a failing check authored no remediation of its own.
FALLBACK_STEPS: Final[Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        "GIT_CLEAN": (
            "Commit or stash uncommitted changes",
            "Run: git status",
            "Ensure working directory is clean",
        ),
        "BUILD_CHECK": (
            "Run: cargo check",
            "Fix all errors and warnings",
        ),
        "TEST_UNIT": (
            "Run: cargo test",
            "Fix test failures",
            "Ensure all tests pass",
        ),
        "GGEN_DRY_RUN": (
            "Run: cargo make sync",
            "Review preview output",
            "Fix ontology/template issues",
        ),
        "G8_SECRETS": (
            "Scan code for API keys, passwords, tokens",
            "Move secrets to .env or secure vault",
            "Rotate exposed credentials",
        ),
    }
)

LOW_IMPACT_CHECKS: Final[frozenset[str]] = frozenset({"H2_CHANGELOG"})


@dataclass(frozen=True, slots=True)
class RemediationSuggestion:
    check_id: str
    title: str
    priority: Priority
    steps: tuple[str, ...]
    automation: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "check_id": self.check_id,
            "title": self.title,
            "priority": self.priority.value,
            "steps": list(self.steps),
            "automation": self.automation,
        }


class RemediationGenerator:
    """Map non-passing results onto suggestions using swappable lookup tables."""

    def __init__(
        self,
        *,
        automation: Mapping[str, str] | None = None,
        titles: Mapping[str, str] | None = None,
        fallback_steps: Mapping[str, Sequence[str]] | None = None,
        severity_priority: Mapping[CheckSeverity, Priority] | None = None,
        low_impact_checks: Iterable[str] | None = None,
    ) -> None:
        self._automation = dict(AUTOMATION_COMMANDS if automation is None else automation)
        self._titles = dict(SUGGESTION_TITLES if titles is None else titles)
        self._fallback_steps = {
            key: tuple(value)
            for key, value in (FALLBACK_STEPS if fallback_steps is None else fallback_steps).items()
        }
        self._severity_priority = dict(
            SEVERITY_PRIORITY if severity_priority is None else severity_priority
        )
        self._low_impact = frozenset(
            LOW_IMPACT_CHECKS if low_impact_checks is None else low_impact_checks
        )

    def generate(self, results: Sequence[DodCheckResult]) -> list[RemediationSuggestion]:
        suggestions = [
            self.suggest(result)
            for result in results
            if result.status in (CheckStatus.FAIL, CheckStatus.WARN)
        ]
        # sorted() is stable, so result order survives within a tier.
        return sorted(suggestions, key=lambda suggestion: suggestion.priority.rank)

    def suggest(self, result: DodCheckResult) -> RemediationSuggestion:
        return RemediationSuggestion(
            check_id=result.id,
            title=self._titles.get(result.id, f"Fix {result.id}"),
            priority=self.priority_for(result),
            steps=self._steps_for(result),
            automation=self._automation.get(result.id),
        )

    def priority_for(self, result: DodCheckResult) -> Priority:
        if result.id in self._low_impact:
            return Priority.LOW
        return self._severity_priority.get(result.severity, Priority.MEDIUM)

    def _steps_for(self, result: DodCheckResult) -> tuple[str, ...]:
        if result.remediation:
            return result.remediation
        fallback = self._fallback_steps.get(result.id)
        if fallback:
            return fallback
        return (f"Review the {result.id} check output",)


def generate_remediation(results: Sequence[DodCheckResult]) -> list[RemediationSuggestion]:
    """Generate suggestions with the default tables."""

    return RemediationGenerator().generate(results)


__all__ = [
    "AUTOMATION_COMMANDS",
    "FALLBACK_STEPS",
    "LOW_IMPACT_CHECKS",
    "Priority",
    "RemediationGenerator",
    "RemediationSuggestion",
    "SEVERITY_PRIORITY",
    "SUGGESTION_TITLES",
    "generate_remediation",
]
