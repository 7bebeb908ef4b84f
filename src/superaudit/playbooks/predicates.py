# SPDX-License-Identifier: MIT
"""Closed predicate vocabulary for playbook checks.

Every name a playbook may use under ``match`` is listed in PREDICATES, each
with a pydantic parameter model and the set of targets it can inspect. Names
outside this table are compile errors; playbook text is never evaluated.
Name patterns are shell-style globs matched case-sensitively.
"""

from __future__ import annotations

import fnmatch
from collections import Counter
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from superaudit.rules import reentrancy
from superaudit.rules.access_control import is_protected
from superaudit.rules.context import AnalysisContext
from superaudit.rules.unchecked_call import is_bool_returning_call
from superaudit.solidity import patterns
from superaudit.solidity.nodes import LOOP_KINDS, STATEMENT_KINDS, Node, NodeKind, SourceUnit

ALL_TARGETS = frozenset(
    {"contract", "function", "modifier", "call", "assignment", "state-variable", "statement"}
)
CODE_TARGETS = frozenset({"call", "assignment", "statement"})
_BODY_TARGETS = frozenset({"contract", "function", "modifier", *CODE_TARGETS})


def glob_match(pattern: str, value: str | None) -> bool:
    return value is not None and fnmatch.fnmatchcase(value, pattern)


@dataclass(frozen=True)
class ProjectIndex:
    """Declaration counts across every unit of a run, for project-scope checks."""

    contract_names: Counter[str]

    @classmethod
    def build(cls, units: Sequence[SourceUnit]) -> ProjectIndex:
        return cls(contract_names=Counter(c.attrs["name"] for u in units for c in u.contracts))


@dataclass(frozen=True)
class Candidate:
    """One node a check inspects, with the declarations that enclose it."""

    ctx: AnalysisContext
    target: str
    node: Node
    contract: Node | None
    function: Node | None
    ancestors: tuple[Node, ...] = ()
    project: ProjectIndex | None = None

    @property
    def name(self) -> str:
        if self.target == "call":
            return patterns.callee_name(self.node) or ""
        if self.target == "assignment":
            left = self.node.child("left")
            root = patterns.root_identifier(left) if left is not None else None
            return root.attrs["name"] if root is not None else ""
        if self.target == "statement":
            return self.node.kind.value
        return self.node.attrs.get("name") or ""

    def scope_node(self) -> Node:
        """Subtree that containment predicates search."""
        if self.target in ("function", "modifier"):
            return patterns.function_body(self.node) or self.node
        return self.node


def _is_target(target: str, node: Node) -> bool:
    if target == "call":
        # `x.value(1)` in `x.value(1)()` is part of the outer call.
        return node.kind is NodeKind.CALL and node.role != "callee"
    if target == "assignment":
        return node.kind is NodeKind.ASSIGNMENT
    return node.kind in STATEMENT_KINDS and node.kind not in (NodeKind.BLOCK, NodeKind.UNCHECKED_BLOCK)


def candidates(ctx: AnalysisContext, target: str, project: ProjectIndex | None = None) -> Iterator[Candidate]:
    """Every node of kind ``target`` in the context's unit, in source order."""
    unit = ctx.unit
    if target == "contract":
        for contract in unit.contracts:
            yield Candidate(ctx, target, contract, contract, None, (), project)
    elif target == "state-variable":
        for contract in unit.contracts:
            for member in contract.children:
                if member.kind is NodeKind.STATE_VARIABLE:
                    yield Candidate(ctx, target, member, contract, None, (contract,), project)
    elif target in ("function", "modifier"):
        kind = NodeKind.FUNCTION if target == "function" else NodeKind.MODIFIER
        for top in unit.root.children:
            if top.kind is NodeKind.CONTRACT:
                for member in top.children:
                    if member.kind is kind:
                        yield Candidate(ctx, target, member, top, member, (top,), project)
            elif top.kind is kind:
                yield Candidate(ctx, target, top, None, top, (), project)
    else:
        for contract, function in ctx.functions():
            body = patterns.function_body(function)
            if body is None:
                continue
            for node, chain in body.walk_with_ancestors((function,)):
                if _is_target(target, node):
                    yield Candidate(ctx, target, node, contract, function, chain, project)


def _calls_in(cand: Candidate) -> Iterator[tuple[Node, Node | None]]:
    """(call, enclosing function) pairs inside the candidate."""
    if cand.target == "call":
        yield cand.node, cand.function
    elif cand.target == "contract":
        for contract, function in cand.ctx.functions():
            if contract is cand.node:
                body = patterns.function_body(function)
                if body is not None:
                    for call in body.find(NodeKind.CALL):
                        yield call, function
    elif cand.target != "state-variable":
        for call in cand.scope_node().find(NodeKind.CALL):
            yield call, cand.function


def _call_kind(cand: Candidate, call: Node, function: Node | None) -> str | None:
    if function is None:
        return patterns.external_call_kind(call, {}, cand.ctx.types)
    return cand.ctx.external_call_kind(call, function)


def _one_or_many(value: Any) -> Any:
    return (value,) if isinstance(value, str) else value


# --- parameter models ---


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class NoParams(_Params):
    pass


class NameParams(_Params):
    name: str = Field(min_length=1)


class OptionalNameParams(_Params):
    name: str = "*"


class PatternParams(_Params):
    pattern: str = Field(min_length=1)


class ExternalCallParams(_Params):
    kind: Literal["any", "low-level", "high-level", "transfer"] = "any"
    with_value: bool | None = None


class _ValuesParams(_Params):
    @field_validator("values", mode="before", check_fields=False)
    @classmethod
    def wrap_single_value(cls, value: Any) -> Any:
        return _one_or_many(value)


class VisibilityParams(_ValuesParams):
    values: tuple[Literal["public", "external", "internal", "private"], ...] = Field(min_length=1)


class MutabilityParams(_ValuesParams):
    values: tuple[Literal["pure", "view", "payable", "nonpayable"], ...] = Field(min_length=1)


class ContractKindParams(_ValuesParams):
    values: tuple[Literal["contract", "interface", "library", "abstract"], ...] = Field(min_length=1)


class WritesStateParams(_Params):
    name: str = "*"
    sensitive: bool = False


class VersionParams(_Params):
    version: str = Field(pattern=r"^\d+\.\d+(\.\d+)?$")

    @field_validator("version", mode="before")
    @classmethod
    def version_as_text(cls, value: Any) -> Any:
        # `pragma-below: 0.8` arrives as a float.
        return str(value) if isinstance(value, float) else value

    @property
    def bound(self) -> tuple[int, int, int]:
        parts = [int(p) for p in self.version.split(".")]
        return (parts[0], parts[1], parts[2] if len(parts) > 2 else 0)


class CallWriteParams(_Params):
    name: str = "*"
    sensitive: bool = True


# --- predicates ---


def external_call(cand: Candidate, params: ExternalCallParams) -> bool:
    for call, function in _calls_in(cand):
        kind = _call_kind(cand, call, function)
        if kind is None or (params.kind != "any" and kind != params.kind):
            continue
        if params.with_value is not None and patterns.sends_value(call) != params.with_value:
            continue
        return True
    return False


def call_to(cand: Candidate, params: NameParams) -> bool:
    return any(glob_match(params.name, patterns.callee_name(call)) for call, _ in _calls_in(cand))


def _discarded_calls(root: Node) -> set[Node]:
    discarded: set[Node] = set()
    for stmt in root.find(NodeKind.EXPRESSION_STATEMENT):
        expr = stmt.child("expression")
        if expr is not None and expr.kind is NodeKind.CALL:
            discarded.add(expr)
    for decl in root.find(NodeKind.VARIABLE_DECLARATION):
        value = decl.child("value")
        names = decl.attrs.get("names") or ()
        if value is not None and value.kind is NodeKind.CALL and names and names[0] is None:
            discarded.add(value)
    return discarded


def return_value_ignored(cand: Candidate, params: NoParams) -> bool:
    root = cand.ancestors[-1] if cand.target == "call" and cand.ancestors else cand.scope_node()
    discarded = _discarded_calls(root)
    for call, function in _calls_in(cand):
        if call not in discarded:
            continue
        if is_bool_returning_call(call) or _call_kind(cand, call, function) == "high-level":
            return True
    return False


def uses_global(cand: Candidate, params: NameParams) -> bool:
    return any(glob_match(params.name, patterns.global_name(n)) for n in cand.scope_node().walk())


def compares_global(cand: Candidate, params: NameParams) -> bool:
    for n in cand.scope_node().find(NodeKind.BINARY):
        if n.attrs["operator"] in ("==", "!=") and any(
            glob_match(params.name, patterns.global_name(side)) for side in n.children
        ):
            return True
    return False


def visibility(cand: Candidate, params: VisibilityParams) -> bool:
    return cand.node.attrs.get("visibility") in params.values


def state_mutability(cand: Candidate, params: MutabilityParams) -> bool:
    mutability = cand.node.attrs.get("mutability") or "nonpayable"
    if mutability == "constant":
        mutability = "view"
    return mutability in params.values


def has_modifier(cand: Candidate, params: OptionalNameParams) -> bool:
    return any(glob_match(params.name, m) for m in patterns.modifier_names(cand.node))


def name_matches(cand: Candidate, params: PatternParams) -> bool:
    return glob_match(params.pattern, cand.name)


def _state_writes(cand: Candidate, name: str, sensitive: bool) -> list[tuple[str, Node]]:
    if cand.contract is None:
        return []
    state = {
        n
        for n in cand.ctx.state_variable_names(cand.contract)
        if glob_match(name, n) and (not sensitive or patterns.is_sensitive_state_name(n))
    }
    if not state:
        return []
    shadowed = patterns.local_names(cand.function) if cand.function is not None else set()
    if cand.target == "contract":
        return [
            w
            for contract, function in cand.ctx.functions()
            if contract is cand.node and (body := patterns.function_body(function)) is not None
            for w in patterns.state_writes(body, state, patterns.local_names(function))
        ]
    return patterns.state_writes(cand.scope_node(), state, shadowed)


def writes_state(cand: Candidate, params: WritesStateParams) -> bool:
    return bool(_state_writes(cand, params.name, params.sensitive))


def _modifier_guards(cand: Candidate) -> bool:
    if cand.contract is None:
        return False
    applied = set(patterns.modifier_names(cand.node))
    if any(patterns.is_access_control_modifier(n) for n in applied):
        return True
    for c in cand.ctx.types.linearized_bases(cand.contract):
        for member in c.children:
            if member.kind is NodeKind.MODIFIER and member.attrs["name"] in applied:
                body = patterns.function_body(member)
                if body is not None and any(_is_check(s) for s in body.walk()):
                    return True
    return False


def _is_check(stmt: Node) -> bool:
    if patterns.is_guard_statement(stmt):
        return True
    return stmt.kind is NodeKind.IF and any(patterns.is_revert_statement(s) for s in stmt.walk())


def missing_require_before_write(cand: Candidate, params: OptionalNameParams) -> bool:
    writes = _state_writes(cand, params.name, sensitive=False)
    if not writes or _modifier_guards(cand):
        return False
    first_write = min(target.span[0] for _, target in writes)
    body = cand.scope_node()
    return not any(n.span[0] < first_write and _is_check(n) for n in body.walk())


def checks_caller(cand: Candidate, params: NoParams) -> bool:
    if cand.target == "function" and cand.contract is not None:
        return is_protected(cand.ctx, cand.contract, cand.node)
    return patterns.checks_caller(cand.node)


def inside_loop(cand: Candidate, params: NoParams) -> bool:
    return patterns.enclosing(cand.ancestors, *LOOP_KINDS) is not None


def inside_unchecked(cand: Candidate, params: NoParams) -> bool:
    return patterns.enclosing(cand.ancestors, NodeKind.UNCHECKED_BLOCK) is not None


def pragma_below(cand: Candidate, params: VersionParams) -> bool:
    return patterns.allows_compiler_below(cand.ctx.unit, params.bound)


def contract_kind(cand: Candidate, params: ContractKindParams) -> bool:
    if cand.contract is None:
        return False
    kind = "abstract" if cand.contract.attrs.get("abstract") else cand.contract.attrs["contract_kind"]
    return kind in params.values


def inherits(cand: Candidate, params: NameParams) -> bool:
    if cand.contract is None:
        return False
    bases = {
        base.attrs["name"].rsplit(".", 1)[-1]
        for c in cand.ctx.types.linearized_bases(cand.contract)
        for base in c.children_with("base")
    }
    return any(glob_match(params.name, b) for b in bases)


def defines_function(cand: Candidate, params: NameParams) -> bool:
    if cand.contract is None:
        return False
    return any(
        glob_match(params.name, fn.attrs.get("name"))
        for c in cand.ctx.types.linearized_bases(cand.contract)
        for fn in patterns.functions_of(c)
    )


def external_call_before_write(cand: Candidate, params: CallWriteParams) -> bool:
    if cand.contract is None or patterns.function_body(cand.node) is None:
        return False

    def tracked(name: str) -> bool:
        return glob_match(params.name, name) and (not params.sensitive or patterns.is_sensitive_state_name(name))

    return bool(reentrancy.reentrant_writes(cand.ctx, cand.contract, cand.node, tracked))


def external_call_in_loop(cand: Candidate, params: NoParams) -> bool:
    function = cand.function
    if function is None or patterns.function_body(function) is None:
        return False
    graph = cand.ctx.cfg(function)
    for block in graph.blocks.values():
        if block.dead or not block.external_calls:
            continue
        if cand.target == "call" and cand.node not in block.external_calls:
            continue
        if graph.in_cycle(block.id):
            return True
    return False


def duplicate_name(cand: Candidate, params: NoParams) -> bool:
    if cand.project is None:
        return False
    return cand.project.contract_names[cand.node.attrs["name"]] > 1


# --- vocabulary ---


@dataclass(frozen=True)
class PredicateDef:
    """A vocabulary entry: parameter model, applicable targets, evaluator."""

    name: str
    evaluate: Callable[[Candidate, Any], bool]
    params: type[_Params] = NoParams
    targets: frozenset[str] = ALL_TARGETS
    primary: str | None = None
    needs_cfg: bool = False
    project_only: bool = False

    def bind(self, args: Any) -> _Params:
        """Validate raw YAML arguments against the parameter model.

        A scalar or list is shorthand for the predicate's primary parameter.

        Raises:
            pydantic.ValidationError: Unknown or ill-typed parameters.
            ValueError: Positional shorthand for a predicate without a primary parameter.
        """
        if args is None:
            payload: Any = {}
        elif isinstance(args, dict):
            payload = args
        elif self.primary is not None:
            payload = {self.primary: args}
        else:
            raise ValueError(f"predicate {self.name!r} takes no arguments")
        return self.params.model_validate(payload)


_FUNCTIONS = frozenset({"function"})
_CALLABLES = frozenset({"function", "modifier"})

PREDICATES: dict[str, PredicateDef] = {
    p.name: p
    for p in [
        PredicateDef("external-call", external_call, ExternalCallParams, _BODY_TARGETS, primary="kind"),
        PredicateDef("call-to", call_to, NameParams, _BODY_TARGETS, primary="name"),
        PredicateDef("return-value-ignored", return_value_ignored, NoParams, _BODY_TARGETS),
        PredicateDef("uses-global", uses_global, NameParams, primary="name"),
        PredicateDef("compares-global", compares_global, NameParams, primary="name"),
        PredicateDef(
            "visibility", visibility, VisibilityParams, frozenset({"function", "state-variable"}), primary="values"
        ),
        PredicateDef("state-mutability", state_mutability, MutabilityParams, _FUNCTIONS, primary="values"),
        PredicateDef("has-modifier", has_modifier, OptionalNameParams, _FUNCTIONS, primary="name"),
        PredicateDef(
            "name-matches", name_matches, PatternParams, ALL_TARGETS - {"statement"}, primary="pattern"
        ),
        PredicateDef(
            "writes-state", writes_state, WritesStateParams, _BODY_TARGETS, primary="name"
        ),
        PredicateDef(
            "missing-require-before-write",
            missing_require_before_write,
            OptionalNameParams,
            _FUNCTIONS,
            primary="name",
        ),
        PredicateDef("checks-caller", checks_caller, NoParams, _CALLABLES),
        PredicateDef("inside-loop", inside_loop, NoParams, CODE_TARGETS),
        PredicateDef("inside-unchecked", inside_unchecked, NoParams, CODE_TARGETS),
        PredicateDef("pragma-below", pragma_below, VersionParams, primary="version"),
        PredicateDef("contract-kind", contract_kind, ContractKindParams, primary="values"),
        PredicateDef("inherits", inherits, NameParams, primary="name"),
        PredicateDef("defines-function", defines_function, NameParams, primary="name"),
        PredicateDef(
            "external-call-before-write",
            external_call_before_write,
            CallWriteParams,
            _FUNCTIONS,
            primary="name",
            needs_cfg=True,
        ),
        PredicateDef(
            "external-call-in-loop",
            external_call_in_loop,
            NoParams,
            frozenset({"function", "call"}),
            needs_cfg=True,
        ),
        PredicateDef(
            "duplicate-name", duplicate_name, NoParams, frozenset({"contract"}), project_only=True
        ),
    ]
}
