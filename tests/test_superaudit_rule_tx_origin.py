# SPDX-License-Identifier: MIT
"""Tests for Rule 1: tx-origin-auth."""

from __future__ import annotations

from superaudit.rules.base import Finding, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.rules.tx_origin import TxOriginAuthRule
from superaudit.solidity.parser import parse


def _run(body: str) -> list[Finding]:
    source = (
        "pragma solidity ^0.8.0;\n"
        "contract Wallet {\n"
        "    address owner;\n"
        "    event Seen(address who);\n"
        f"    function pay(address to) public {{\n        {body}\n    }}\n"
        "}\n"
    )
    ctx = AnalysisContext(parse("Wallet.sol", source))
    TxOriginAuthRule().apply(ctx)
    return ctx.findings


class TestTxOriginAuth:
    def test_require_on_tx_origin(self) -> None:
        (finding,) = _run("require(tx.origin == owner);")
        assert finding.rule_id == "tx-origin-auth"
        assert finding.severity is Severity.ERROR
        assert finding.line == 6
        assert "msg.sender" in finding.message

    def test_inequality_in_if(self) -> None:
        findings = _run("if (tx.origin != owner) { revert(); }")
        assert len(findings) == 1

    def test_operand_order_does_not_matter(self) -> None:
        assert len(_run("require(owner == tx.origin);")) == 1

    def test_msg_sender_is_clean(self) -> None:
        assert _run("require(msg.sender == owner);") == []

    def test_eoa_check_is_allowed(self) -> None:
        assert _run('require(tx.origin == msg.sender, "no contracts");') == []

    def test_non_comparison_use_is_ignored(self) -> None:
        assert _run("emit Seen(tx.origin);") == []

    def test_findings_are_enrichment_eligible(self) -> None:
        (finding,) = _run("require(tx.origin == owner);")
        assert finding.eligible_for_enrichment is True
