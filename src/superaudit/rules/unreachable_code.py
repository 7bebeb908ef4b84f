# SPDX-License-Identifier: MIT
"""Rule 6: unreachable-code, statements no execution path can reach."""

from __future__ import annotations

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext


class UnreachableCodeRule:
    """Report the first statement of each dead region of a function's control-flow graph.

    A region starts at a dead block with no predecessors: code after an
    unconditional return/revert/break, or the arm of a branch whose condition is
    a literal boolean. Blocks nested inside a region are not reported again.
    """

    id = "unreachable-code"
    description = "Flag statements after unconditional exits and branches that can never run"
    severity = Severity.WARNING
    kind = RuleKind.CFG

    def apply(self, ctx: AnalysisContext) -> None:
        for _, function in ctx.functions():
            graph = ctx.cfg(function)
            for block in graph.dead_blocks():
                if graph.predecessors(block.id):
                    continue
                where = block.location
                if where is None:
                    continue
                if block.label == "unreachable":
                    message = "Unreachable code: no path reaches this statement after an unconditional exit"
                else:
                    message = "Dead branch: the condition is a constant, so this code never runs"
                ctx.report(self, where, message)
