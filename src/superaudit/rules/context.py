# SPDX-License-Identifier: MIT
"""Per-file and per-project contexts handed to rules: parsed tree, finding sink, lazy CFGs."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from superaudit.rules.base import Finding, Severity
from superaudit.solidity import patterns
from superaudit.solidity.cfg import ControlFlowGraph, build_cfg
from superaudit.solidity.nodes import Node, SourceUnit

if TYPE_CHECKING:
    from superaudit.rules.base import ProjectRule, Rule


def _finding(rule: Rule | ProjectRule, node: Node, file: str, message: str, severity: Severity | None) -> Finding:
    level = rule.severity if severity is None else severity
    return Finding(
        rule_id=rule.id,
        severity=level,
        message=message,
        file=file,
        line=node.line,
        column=node.column,
        eligible_for_enrichment=level >= Severity.WARNING,
    )


@dataclass
class AnalysisContext:
    """Everything a rule may read while analyzing one source unit.

    Rules only append to ``findings`` (through ``report``); the tree itself is
    never mutated. Control-flow graphs are built on first request and cached per
    function, so a rule set with no CFG rules never pays for graph construction.
    """

    unit: SourceUnit
    findings: list[Finding] = field(default_factory=list)
    _graphs: dict[Node, ControlFlowGraph] = field(default_factory=dict, init=False, repr=False)
    _owners: dict[Node, Node | None] | None = field(default=None, init=False, repr=False)
    _scopes: dict[Node, dict[str, Node]] = field(default_factory=dict, init=False, repr=False)
    _types: patterns.TypeIndex | None = field(default=None, init=False, repr=False)

    @property
    def path(self) -> str:
        return self.unit.path

    @property
    def source(self) -> str:
        return self.unit.source

    @property
    def root(self) -> Node:
        return self.unit.root

    @property
    def types(self) -> patterns.TypeIndex:
        if self._types is None:
            self._types = patterns.TypeIndex.build(self.unit)
        return self._types

    @property
    def graphs_built(self) -> int:
        return len(self._graphs)

    # --- declarations ---

    def _owner_map(self) -> dict[Node, Node | None]:
        if self._owners is None:
            self._owners = {fn: contract for contract, fn in patterns.iter_functions(self.unit)}
        return self._owners

    def functions(self) -> Iterator[tuple[Node | None, Node]]:
        """(contract or None, function or modifier) for every declaration with a body."""
        for fn, contract in self._owner_map().items():
            yield contract, fn

    def contract_of(self, function: Node) -> Node | None:
        return self._owner_map().get(function)

    def state_variable_names(self, contract: Node | None) -> set[str]:
        if contract is None:
            return set()
        return set(self.types.state_variables(contract))

    def scope(self, function: Node) -> dict[str, Node]:
        """Name -> declared type for state variables, parameters and locals visible in ``function``."""
        if function not in self._scopes:
            self._scopes[function] = patterns.scope_types(function, self.contract_of(function), self.types)
        return self._scopes[function]

    # --- calls and graphs ---

    def external_call_kind(self, call: Node, function: Node) -> str | None:
        return patterns.external_call_kind(call, self.scope(function), self.types)

    def cfg(self, function: Node) -> ControlFlowGraph:
        """The control-flow graph of ``function``, built on first use."""
        graph = self._graphs.get(function)
        if graph is None:
            graph = build_cfg(
                function,
                is_external_call=lambda call: self.external_call_kind(call, function) is not None,
            )
            self._graphs[function] = graph
        return graph

    # --- reporting ---

    def report(self, rule: Rule, node: Node, message: str, *, severity: Severity | None = None) -> Finding:
        """Append a finding located at ``node`` and return it."""
        finding = _finding(rule, node, self.path, message, severity)
        self.findings.append(finding)
        return finding


@dataclass
class ProjectContext:
    """Context for project-scope rules: every analyzed unit plus a finding sink."""

    units: Sequence[SourceUnit]
    findings: list[Finding] = field(default_factory=list)

    def report(
        self,
        rule: ProjectRule,
        unit: SourceUnit,
        node: Node,
        message: str,
        *,
        severity: Severity | None = None,
    ) -> Finding:
        finding = _finding(rule, node, unit.path, message, severity)
        self.findings.append(finding)
        return finding
