"""
dod-gate — release-readiness gate

Purpose
- Package root. Runs a registry of pluggable checks against a workspace under
  a validation profile, scores the outcome, and records tamper-evident audit
  artifacts (receipt, markdown report, evidence bundle).

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
- Public entry points live in submodules: ``dod_gate.validator.DodValidator``,
  ``dod_gate.checks.CheckRegistry`` and ``dod_gate.config.resolve_profile``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
