# SPDX-License-Identifier: MIT
"""Rule 1: tx-origin-auth, authorization decided by comparing tx.origin."""

from __future__ import annotations

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.solidity import patterns
from superaudit.solidity.nodes import Node


def _is_eoa_check(comparison: Node) -> bool:
    # tx.origin == msg.sender rejects contract callers; it grants nothing.
    names = {patterns.global_name(side) for side in comparison.children}
    return names == {"tx.origin", "msg.sender"}


class TxOriginAuthRule:
    """Detect access checks that trust tx.origin instead of msg.sender."""

    id = "tx-origin-auth"
    description = "Flag equality checks against tx.origin used for authorization"
    severity = Severity.ERROR
    kind = RuleKind.AST

    def apply(self, ctx: AnalysisContext) -> None:
        for comparison in patterns.comparisons_with_global(ctx.root, "tx.origin"):
            if _is_eoa_check(comparison):
                continue
            ctx.report(
                self,
                comparison,
                "Authorization via tx.origin: a malicious contract the owner interacts with "
                "can pass this check; compare msg.sender instead",
            )
