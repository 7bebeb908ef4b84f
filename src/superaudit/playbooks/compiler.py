# SPDX-License-Identifier: MIT
"""Compile playbook checks into Rule objects the engine runs alongside the built-ins."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ValidationError

from superaudit.playbooks.parser import parse_playbook, parse_playbook_file, safe_error_summary
from superaudit.playbooks.predicates import PREDICATES, Candidate, PredicateDef, ProjectIndex, candidates
from superaudit.playbooks.schema import PlaybookSpec, PlaybookValidationError, StaticCheckSpec
from superaudit.rules.base import RuleKind
from superaudit.rules.context import AnalysisContext, ProjectContext

log = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(contract|function|name|file|line|rule)\}")


class CompileError(Exception):
    """A check could not be compiled; the other checks of the playbook are unaffected."""

    def __init__(self, check_id: str, message: str) -> None:
        self.check_id = check_id
        self.message = message
        super().__init__(f"{check_id}: {message}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompileError):
            return NotImplemented
        return (self.check_id, self.message) == (other.check_id, other.message)

    def __hash__(self) -> int:
        return hash((self.check_id, self.message))


def render_message(template: str, values: dict[str, str]) -> str:
    """Substitute the known ``{placeholder}`` names; every other brace is literal text."""
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


@dataclass(frozen=True)
class BoundPredicate:
    definition: PredicateDef
    params: BaseModel
    negated: bool = False

    def holds(self, cand: Candidate) -> bool:
        return self.definition.evaluate(cand, self.params) != self.negated


class PlaybookRule:
    """A compiled check. Indistinguishable from a built-in rule to the engine."""

    def __init__(self, check: StaticCheckSpec, predicates: tuple[BoundPredicate, ...], playbook: str = "") -> None:
        self.id = check.id
        self.description = check.description or check.message
        self.severity = check.level
        self.targets = check.target
        self.template = check.message
        self.predicates = predicates
        self.playbook = playbook
        if check.scope == "project":
            self.kind = RuleKind.PROJECT
        elif any(p.definition.needs_cfg for p in predicates):
            self.kind = RuleKind.CFG
        else:
            self.kind = RuleKind.AST

    def __repr__(self) -> str:
        return f"PlaybookRule({self.id!r}, kind={self.kind.value}, playbook={self.playbook!r})"

    def _matches(self, ctx: AnalysisContext, project: ProjectIndex | None = None) -> Iterator[Candidate]:
        for target in self.targets:
            for cand in candidates(ctx, target, project):
                if all(p.holds(cand) for p in self.predicates):
                    yield cand

    def _message(self, cand: Candidate) -> str:
        function = cand.function.attrs.get("name") if cand.function is not None else None
        contract = cand.contract.attrs.get("name") if cand.contract is not None else None
        return render_message(
            self.template,
            {
                "contract": contract or "",
                "function": function or "",
                "name": cand.name,
                "file": cand.ctx.path,
                "line": str(cand.node.line),
                "rule": self.id,
            },
        )

    def apply(self, ctx: AnalysisContext) -> None:
        for cand in self._matches(ctx):
            ctx.report(self, cand.node, self._message(cand))

    def apply_project(self, ctx: ProjectContext) -> None:
        index = ProjectIndex.build(ctx.units)
        for unit in ctx.units:
            unit_ctx = AnalysisContext(unit)
            for cand in self._matches(unit_ctx, index):
                ctx.report(self, unit, cand.node, self._message(cand))


def compile_check(check: StaticCheckSpec, *, playbook: str = "") -> PlaybookRule:
    """Bind every ``match`` entry to the vocabulary and build the rule.

    Raises:
        CompileError: Unknown predicate, invalid parameters, a predicate that
            cannot inspect one of the check's targets, or a project-only
            predicate in a file-scope check.
    """
    bound: list[BoundPredicate] = []
    for call in check.match:
        definition = PREDICATES.get(call.name)
        if definition is None:
            raise CompileError(check.id, f"unknown predicate {call.name[:64]!r}")
        unsupported = sorted(set(check.target) - definition.targets)
        if unsupported:
            raise CompileError(check.id, f"predicate {definition.name!r} cannot inspect target(s) {unsupported}")
        if definition.project_only and check.scope != "project":
            raise CompileError(check.id, f"predicate {definition.name!r} requires scope: project")
        try:
            params = definition.bind(call.args)
        except ValidationError as e:
            summary = "; ".join(safe_error_summary(e))
            raise CompileError(check.id, f"invalid parameters for {definition.name!r}: {summary}") from None
        except ValueError as e:
            raise CompileError(check.id, str(e)) from None
        bound.append(BoundPredicate(definition, params, call.negated))
    return PlaybookRule(check, tuple(bound), playbook)


def compile_playbook(spec: PlaybookSpec) -> tuple[list[PlaybookRule], list[CompileError]]:
    """Compile every check; failures are collected, never raised."""
    rules: list[PlaybookRule] = []
    errors: list[CompileError] = []
    for check in spec.checks:
        try:
            rules.append(compile_check(check, playbook=spec.meta.name))
        except CompileError as err:
            log.info("Skipping playbook check %s: %s", err.check_id, err.message)
            errors.append(err)
    return rules, errors


@dataclass
class CompiledPlaybook:
    """Everything produced from one playbook document."""

    spec: PlaybookSpec
    rules: list[PlaybookRule] = field(default_factory=list)
    validation_errors: list[PlaybookValidationError] = field(default_factory=list)
    compile_errors: list[CompileError] = field(default_factory=list)


def load_playbook(text: str) -> CompiledPlaybook:
    """Parse and compile a playbook document. Raises PlaybookError for whole-document failures."""
    spec, validation_errors = parse_playbook(text)
    rules, compile_errors = compile_playbook(spec)
    return CompiledPlaybook(spec, rules, validation_errors, compile_errors)


def load_playbook_file(path: str | Path) -> CompiledPlaybook:
    spec, validation_errors = parse_playbook_file(path)
    rules, compile_errors = compile_playbook(spec)
    return CompiledPlaybook(spec, rules, validation_errors, compile_errors)
