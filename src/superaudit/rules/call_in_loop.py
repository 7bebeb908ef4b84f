# SPDX-License-Identifier: MIT
"""Rule 7: external-call-in-loop, denial of service through calls inside loops."""

from __future__ import annotations

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext


class ExternalCallInLoopRule:
    """Detect external calls in blocks that lie on a control-flow cycle."""

    id = "external-call-in-loop"
    description = "Flag external calls and transfers executed inside loops"
    severity = Severity.WARNING
    kind = RuleKind.CFG

    def apply(self, ctx: AnalysisContext) -> None:
        for _, function in ctx.functions():
            graph = ctx.cfg(function)
            for block in graph.blocks.values():
                if block.dead or not block.external_calls or not graph.in_cycle(block.id):
                    continue
                for call in block.external_calls:
                    ctx.report(
                        self,
                        call,
                        "External call inside a loop: one reverting or gas-hungry callee blocks "
                        "every iteration; prefer a pull-payment pattern",
                    )
