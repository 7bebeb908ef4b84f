# SPDX-License-Identifier: MIT
"""Rule engine: applies the active rule set to every source unit and orders the findings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from superaudit.rules.base import Finding, ProjectRule, Rule, RuleFailure, RuleKind
from superaudit.rules.config import ProfileConfig
from superaudit.rules.context import AnalysisContext, ProjectContext
from superaudit.solidity.nodes import SourceUnit

log = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Ordered findings plus the rule failures recorded along the way."""

    findings: list[Finding] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)
    graphs_built: int = 0


@dataclass
class _UnitOutcome:
    ranked: list[tuple[int, Finding]]
    failures: list[RuleFailure]
    graphs_built: int


def _describe(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"


class RuleEngine:
    """Runs an ordered rule set (built-in and compiled playbook rules alike)."""

    def __init__(self, rules: Sequence[Rule | ProjectRule] | None = None) -> None:
        if rules is None:
            from superaudit.rules.registry import RULE_REGISTRY

            rules = [cls() for cls in RULE_REGISTRY]
        self._rules: list[Rule | ProjectRule] = list(rules)

    @property
    def rules(self) -> list[Rule | ProjectRule]:
        return list(self._rules)

    def _analyze(self, unit: SourceUnit) -> _UnitOutcome:
        ctx = AnalysisContext(unit)
        ranked: list[tuple[int, Finding]] = []
        failures: list[RuleFailure] = []
        for index, rule in enumerate(self._rules):
            if rule.kind is RuleKind.PROJECT:
                continue
            mark = len(ctx.findings)
            try:
                rule.apply(ctx)  # type: ignore[union-attr]
            except Exception as exc:
                # Partial output of a failing rule is not trustworthy.
                del ctx.findings[mark:]
                failures.append(RuleFailure(rule_id=rule.id, file=unit.path, error=_describe(exc)))
                log.warning("Rule %s failed on %s: %s", rule.id, unit.path, _describe(exc))
                continue
            ranked.extend((index, f) for f in ctx.findings[mark:])
        return _UnitOutcome(ranked=ranked, failures=failures, graphs_built=ctx.graphs_built)

    def _analyze_project(self, units: Sequence[SourceUnit]) -> _UnitOutcome:
        ctx = ProjectContext(units)
        ranked: list[tuple[int, Finding]] = []
        failures: list[RuleFailure] = []
        for index, rule in enumerate(self._rules):
            if rule.kind is not RuleKind.PROJECT:
                continue
            mark = len(ctx.findings)
            try:
                rule.apply_project(ctx)  # type: ignore[union-attr]
            except Exception as exc:
                del ctx.findings[mark:]
                failures.append(RuleFailure(rule_id=rule.id, file="<project>", error=_describe(exc)))
                log.warning("Project rule %s failed: %s", rule.id, _describe(exc))
                continue
            ranked.extend((index, f) for f in ctx.findings[mark:])
        return _UnitOutcome(ranked=ranked, failures=failures, graphs_built=0)

    def analyze_unit(self, unit: SourceUnit) -> AnalysisResult:
        """Apply the per-file rules to a single unit."""
        return self._merge([self._analyze(unit)])

    def run(self, units: Sequence[SourceUnit], *, workers: int = 1) -> AnalysisResult:
        """Analyze every unit, then run project-scope rules once all files are done.

        Files are independent, so ``workers > 1`` spreads them over a thread pool.
        The result is identical for any worker count.
        """
        if workers > 1 and len(units) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(self._analyze, units))
        else:
            outcomes = [self._analyze(unit) for unit in units]
        if any(rule.kind is RuleKind.PROJECT for rule in self._rules):
            outcomes.append(self._analyze_project(units))
        return self._merge(outcomes)

    @staticmethod
    def _merge(outcomes: list[_UnitOutcome]) -> AnalysisResult:
        ranked = [item for outcome in outcomes for item in outcome.ranked]
        ranked.sort(key=lambda item: (item[1].file, item[1].line, item[1].column, item[0]))
        failures = [failure for outcome in outcomes for failure in outcome.failures]
        return AnalysisResult(
            findings=[finding for _, finding in ranked],
            failures=failures,
            graphs_built=sum(outcome.graphs_built for outcome in outcomes),
        )

    def check_gate(self, findings: list[Finding], config: ProfileConfig) -> bool:
        """Return True if any finding meets or exceeds the profile's fail_on threshold."""
        return any(f.severity >= config.fail_on for f in findings)
