# SPDX-License-Identifier: MIT
"""Security rule engine: deterministic detectors over the AST and per-function CFGs."""

from collections.abc import Sequence

from superaudit.rules.base import Finding, FindingKey, ProjectRule, Rule, RuleFailure, RuleKind, Severity
from superaudit.rules.config import ModeConfig, ProfileConfig, load_mode, load_profile
from superaudit.rules.context import AnalysisContext, ProjectContext
from superaudit.rules.engine import AnalysisResult, RuleEngine
from superaudit.solidity.nodes import SourceUnit

__all__ = [
    "AnalysisContext",
    "AnalysisResult",
    "Finding",
    "FindingKey",
    "ModeConfig",
    "ProfileConfig",
    "ProjectContext",
    "ProjectRule",
    "Rule",
    "RuleEngine",
    "RuleFailure",
    "RuleKind",
    "Severity",
    "check_gate",
    "load_mode",
    "load_profile",
    "run_rules",
]


def run_rules(units: Sequence[SourceUnit], *, workers: int = 1) -> AnalysisResult:
    """Convenience: run every built-in rule over already-parsed units."""
    engine = RuleEngine()
    return engine.run(units, workers=workers)


def check_gate(findings: list[Finding], profile: ProfileConfig) -> bool:
    """Convenience: check if any findings exceed the profile gate."""
    engine = RuleEngine(rules=[])
    return engine.check_gate(findings, profile)
