# SPDX-License-Identifier: MIT
"""Rule 3: missing-access-control, public entry points that change privileged state unguarded."""

from __future__ import annotations

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.solidity import patterns
from superaudit.solidity.nodes import Node, NodeKind

_DESTRUCT = frozenset({"selfdestruct", "suicide"})


def _guarding_modifiers(ctx: AnalysisContext, contract: Node, function: Node) -> bool:
    """True when an applied modifier looks like, or is defined as, a caller check."""
    names = patterns.modifier_names(function)
    if any(patterns.is_access_control_modifier(n) for n in names):
        return True
    definitions = {
        m.attrs["name"]: m
        for c in ctx.types.linearized_bases(contract)
        for m in c.children
        if m.kind is NodeKind.MODIFIER
    }
    return any(n in definitions and patterns.checks_caller(definitions[n]) for n in names)


def is_protected(ctx: AnalysisContext, contract: Node, function: Node) -> bool:
    return _guarding_modifiers(ctx, contract, function) or patterns.checks_caller(function)


class MissingAccessControlRule:
    """Detect externally callable functions that write owner/admin-style state or self-destruct
    without any caller check."""

    id = "missing-access-control"
    description = "Flag unprotected public functions that modify privileged state or self-destruct"
    severity = Severity.WARNING
    kind = RuleKind.AST

    def apply(self, ctx: AnalysisContext) -> None:
        for contract, function in ctx.functions():
            if contract is None or contract.attrs["contract_kind"] in ("interface", "library"):
                continue
            if function.kind is not NodeKind.FUNCTION or function.attrs.get("function_kind") != "function":
                continue
            if not patterns.is_externally_callable(function) or not patterns.is_state_changing(function):
                continue
            if is_protected(ctx, contract, function):
                continue
            body = patterns.function_body(function)
            if body is None:
                continue
            name = function.attrs.get("name")
            for call in body.find(NodeKind.CALL):
                if patterns.callee_name(call) in _DESTRUCT:
                    ctx.report(
                        self,
                        call,
                        f"Anyone can call `{name}` and destroy the contract: no access control",
                        severity=Severity.ERROR,
                    )
            shadowed = patterns.local_names(function)
            written: list[str] = []
            for var, _ in patterns.state_writes(body, ctx.state_variable_names(contract), shadowed):
                if patterns.is_privileged_state_name(var) and var not in written:
                    written.append(var)
            if written:
                listed = ", ".join(f"`{v}`" for v in written)
                ctx.report(
                    self,
                    function,
                    f"Function `{name}` modifies privileged state {listed} without access control",
                )
