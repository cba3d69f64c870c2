"""
dod-gate — markdown report rendering

Purpose
- Render the human-readable ``report.md`` for a validation result from a
  jinja2 template shipped with the package (or a caller-supplied directory).

Functional requirements
- Category sections follow the fixed A–H order and omit empty categories.
- Table cells escape pipes and flatten newlines.
- The remediation section appears only when failures or warnings exist.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import structlog
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from dod_gate.domain.models import (
    CategoryScore,
    CheckCategory,
    DodCheckResult,
    DodValidationResult,
    OverallVerdict,
)
from dod_gate.errors import AuditError
from dod_gate.evaluation.remediation import Priority, RemediationGenerator, RemediationSuggestion
from dod_gate.utils.fs import atomic_write

logger = structlog.get_logger(__name__)

REPORT_TEMPLATE_NAME: Final[str] = "report.md.j2"

CATEGORY_LABELS: Final[Mapping[CheckCategory, str]] = {
    CheckCategory.WORKSPACE_INTEGRITY: "A. Workspace Integrity (G0)",
    CheckCategory.INTENT_ALIGNMENT: "B. Intent Alignment (WHY)",
    CheckCategory.TOOL_REGISTRY: "C. Tool Registry (WHAT)",
    CheckCategory.BUILD_CORRECTNESS: "D. Build Correctness",
    CheckCategory.TEST_TRUTH: "E. Test Truth",
    CheckCategory.GGEN_PIPELINE: "F. Ggen Pipeline",
    CheckCategory.SAFETY_INVARIANTS: "G. Safety Invariants",
    CheckCategory.DEPLOYMENT_READINESS: "H. Deployment Readiness",
}


@dataclass(frozen=True, slots=True)
class _CategorySection:
    label: str
    score: CategoryScore | None
    checks: tuple[DodCheckResult, ...]


@dataclass(frozen=True, slots=True)
class _PriorityTier:
    label: str
    suggestions: tuple[RemediationSuggestion, ...]


def escape_markdown_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\r", "").replace("\n", " ")


def _default_template_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


class ReportGenerator:
    """Render validation results to markdown."""

    def __init__(
        self,
        *,
        template_root: str | Path | None = None,
        remediation: RemediationGenerator | None = None,
    ) -> None:
        root = Path(template_root) if template_root is not None else _default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.is_dir():
            raise NotADirectoryError(f"template root is not a directory: {resolved_root}")
        self._template_root = resolved_root
        self._remediation = remediation or RemediationGenerator()
        self._environment = Environment(
            loader=FileSystemLoader(str(resolved_root)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._environment.filters["md_cell"] = escape_markdown_cell

    @property
    def template_root(self) -> Path:
        return self._template_root

    def generate_markdown(self, result: DodValidationResult) -> str:
        sections = [
            _CategorySection(
                label=label,
                score=result.category_scores.get(category),
                checks=tuple(
                    check for check in result.check_results if check.category is category
                ),
            )
            for category, label in CATEGORY_LABELS.items()
        ]
        suggestions = self._remediation.generate(result.check_results)
        tiers = [
            _PriorityTier(
                label=priority.label,
                suggestions=tuple(item for item in suggestions if item.priority is priority),
            )
            for priority in Priority
        ]

        try:
            template = self._environment.get_template(REPORT_TEMPLATE_NAME)
            return template.render(
                result=result,
                verdict_text="PASS" if result.verdict is OverallVerdict.READY else "FAIL",
                mode_label=result.mode.value.capitalize(),
                sections=[section for section in sections if section.checks],
                show_remediation=result.has_issues,
                tiers=[tier for tier in tiers if tier.suggestions],
            )
        except TemplateError as exc:
            raise AuditError(f"unable to render report template: {exc}") from exc

    def write(self, result: DodValidationResult, path: str | Path) -> Path:
        target = Path(path)
        markdown = self.generate_markdown(result)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(target, markdown)
        except OSError as exc:
            raise AuditError(f"unable to write report {target}: {exc}") from exc
        logger.info("report_written", path=target.as_posix(), bytes=len(markdown.encode("utf-8")))
        return target


__all__ = [
    "CATEGORY_LABELS",
    "REPORT_TEMPLATE_NAME",
    "ReportGenerator",
    "escape_markdown_cell",
]
