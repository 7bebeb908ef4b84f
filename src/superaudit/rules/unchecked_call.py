# SPDX-License-Identifier: MIT
"""Rule 2: unchecked-call-return, low-level calls whose success flag is dropped."""

from __future__ import annotations

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.solidity import patterns
from superaudit.solidity.nodes import Node, NodeKind

_BOOL_RETURNING = patterns.LOW_LEVEL_CALLS | {"send"}


def is_bool_returning_call(node: Node | None) -> bool:
    """Low-level call or ``send``: failure is signalled only through the returned bool."""
    if node is None or node.kind is not NodeKind.CALL:
        return False
    callee = patterns.unwrap_callee(node)
    if callee is None or callee.kind is not NodeKind.MEMBER_ACCESS:
        return False
    base = callee.child("expression")
    if base is not None and base.kind is NodeKind.IDENTIFIER and base.attrs["name"] in ("this", "super"):
        return False
    return callee.attrs["member"] in _BOOL_RETURNING


def _is_read(body: Node, name: str) -> bool:
    return any(n.attrs["name"] == name for n in body.find(NodeKind.IDENTIFIER))


class UncheckedCallReturnRule:
    """Detect `.call`, `.delegatecall`, `.staticcall` and `.send` results that are never checked."""

    id = "unchecked-call-return"
    description = "Flag low-level calls and send() whose boolean result is ignored"
    severity = Severity.WARNING
    kind = RuleKind.AST

    def apply(self, ctx: AnalysisContext) -> None:
        for _, function in ctx.functions():
            body = patterns.function_body(function)
            if body is None:
                continue
            for stmt in body.find(NodeKind.EXPRESSION_STATEMENT):
                expr = stmt.child("expression")
                if is_bool_returning_call(expr):
                    ctx.report(
                        self,
                        stmt,
                        f"Return value of low-level `{patterns.callee_name(expr)}` is ignored; "
                        "a failed call will not revert",
                    )
            for decl in body.find(NodeKind.VARIABLE_DECLARATION):
                value = decl.child("value")
                if not is_bool_returning_call(value):
                    continue
                names = decl.attrs.get("names") or (None,)
                success = names[0]
                member = patterns.callee_name(value)
                if success is None:
                    ctx.report(self, decl, f"Success flag of low-level `{member}` is discarded")
                elif not _is_read(body, success):
                    ctx.report(self, decl, f"Success flag `{success}` of low-level `{member}` is never checked")
