# SPDX-License-Identifier: MIT
"""Rule 4: unchecked-arithmetic, state arithmetic that can silently wrap."""

from __future__ import annotations

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.solidity import patterns
from superaudit.solidity.nodes import Node, NodeKind

CHECKED_ARITHMETIC_VERSION = (0, 8, 0)


def is_arithmetic_assignment(node: Node) -> bool:
    """``x += y`` style updates, or ``x = a + b`` with a top-level arithmetic operator."""
    if node.kind is not NodeKind.ASSIGNMENT:
        return False
    operator = node.attrs["operator"]
    if operator in patterns.ARITHMETIC_ASSIGNMENTS:
        return True
    right = node.child("right")
    return (
        operator == "="
        and right is not None
        and right.kind is NodeKind.BINARY
        and right.attrs["operator"] in patterns.ARITHMETIC_OPERATORS
    )


class UncheckedArithmeticRule:
    """Detect wrapping arithmetic.

    Before 0.8.0 every operation wraps, so any arithmetic assignment in a file
    whose pragma admits an older compiler is reported. From 0.8.0 on only code
    inside ``unchecked { ... }`` wraps.
    """

    id = "unchecked-arithmetic"
    description = "Flag arithmetic without overflow checks (pre-0.8 compilers or unchecked blocks)"
    severity = Severity.WARNING
    kind = RuleKind.AST

    def apply(self, ctx: AnalysisContext) -> None:
        legacy = patterns.allows_compiler_below(ctx.unit, CHECKED_ARITHMETIC_VERSION)
        for _, function in ctx.functions():
            body = patterns.function_body(function)
            if body is None:
                continue
            for node, ancestors in body.walk_with_ancestors():
                if not is_arithmetic_assignment(node):
                    continue
                if legacy:
                    ctx.report(
                        self,
                        node,
                        "Arithmetic without overflow checks: the pragma admits compilers before 0.8.0; "
                        "use SafeMath or require ^0.8.0",
                    )
                elif patterns.enclosing(ancestors, NodeKind.UNCHECKED_BLOCK) is not None:
                    ctx.report(self, node, "Arithmetic inside an unchecked block wraps on overflow")
