"""Best-effort git commit/branch lookup for receipt metadata."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class GitMetadataSource(Protocol):
    def commit(self, workspace_root: Path) -> str | None: ...

    def branch(self, workspace_root: Path) -> str | None: ...


@dataclass(frozen=True, slots=True)
class GitMetadataProvider:
    """Shell out to ``git rev-parse``; every failure degrades to ``None``."""

    timeout_seconds: float = 5.0
    git_executable: str = "git"

    def commit(self, workspace_root: Path) -> str | None:
        return self._rev_parse(workspace_root, "HEAD")

    def branch(self, workspace_root: Path) -> str | None:
        return self._rev_parse(workspace_root, "--abbrev-ref", "HEAD")

    def _rev_parse(self, workspace_root: Path, *args: str) -> str | None:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            completed = subprocess.run(
                (self.git_executable, "rev-parse", *args),
                cwd=Path(workspace_root),
                env=env,
                text=True,
                capture_output=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("git_metadata_unavailable", error=f"{type(exc).__name__}: {exc}")
            return None
        if completed.returncode != 0:
            return None
        value = completed.stdout.strip()
        return value or None


__all__ = ["GitMetadataProvider", "GitMetadataSource"]
