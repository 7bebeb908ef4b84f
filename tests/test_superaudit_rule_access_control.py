# SPDX-License-Identifier: MIT
"""Tests for Rule 3: missing-access-control."""

from __future__ import annotations

from superaudit.rules.access_control import MissingAccessControlRule
from superaudit.rules.base import Finding, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.solidity.parser import parse


def _run(members: str, header: str = "contract Vault") -> list[Finding]:
    source = (
        f"{header} {{\n"
        "    address public owner;\n"
        "    uint256 public fee;\n"
        "    mapping(address => uint256) balances;\n"
        f"{members}\n"
        "}\n"
    )
    ctx = AnalysisContext(parse("Vault.sol", source))
    MissingAccessControlRule().apply(ctx)
    return ctx.findings


class TestMissingAccessControl:
    def test_unprotected_owner_change(self) -> None:
        (finding,) = _run("    function setOwner(address o) public { owner = o; }")
        assert finding.severity is Severity.WARNING
        assert finding.line == 5
        assert finding.message == "Function `setOwner` modifies privileged state `owner` without access control"

    def test_lists_every_privileged_variable_once(self) -> None:
        (finding,) = _run("    function reset() external { owner = address(0); fee = 0; fee = 1; }")
        assert "`owner`, `fee`" in finding.message

    def test_only_modifier_protects(self) -> None:
        members = (
            "    modifier onlyOwner() { require(msg.sender == owner); _; }\n"
            "    function setFee(uint256 f) external onlyOwner { fee = f; }"
        )
        assert _run(members) == []

    def test_modifier_defined_as_caller_check_protects(self) -> None:
        members = (
            "    modifier gated() { if (msg.sender != owner) { revert(); } _; }\n"
            "    function setFee(uint256 f) external gated { fee = f; }"
        )
        assert _run(members) == []

    def test_inline_sender_check_protects(self) -> None:
        members = '    function setFee(uint256 f) external { require(msg.sender == owner, "auth"); fee = f; }'
        assert _run(members) == []

    def test_role_helper_call_protects(self) -> None:
        members = "    function setFee(uint256 f) external { _checkOwner(); fee = f; }"
        assert _run(members) == []

    def test_internal_function_ignored(self) -> None:
        assert _run("    function _setOwner(address o) internal { owner = o; }") == []

    def test_view_function_ignored(self) -> None:
        assert _run("    function peek() public view returns (address) { return owner; }") == []

    def test_constructor_ignored(self) -> None:
        assert _run("    constructor() { owner = msg.sender; }") == []

    def test_non_privileged_state_ignored(self) -> None:
        assert _run("    function deposit() external payable { balances[msg.sender] += msg.value; }") == []

    def test_local_shadowing_is_not_a_state_write(self) -> None:
        assert _run("    function calc() external { uint256 fee = 3; fee = fee + 1; }") == []

    def test_unprotected_selfdestruct_is_error(self) -> None:
        (finding,) = _run("    function kill() external { selfdestruct(payable(msg.sender)); }")
        assert finding.severity is Severity.ERROR
        assert "destroy the contract" in finding.message

    def test_interfaces_and_libraries_skipped(self) -> None:
        assert _run("    function setOwner(address o) public { owner = o; }", header="library Lib") == []

    def test_inherited_state_is_tracked(self) -> None:
        source = (
            "contract Ownable { address internal owner; }\n"
            "contract Token is Ownable {\n"
            "    function grab() external { owner = msg.sender; }\n"
            "}\n"
        )
        ctx = AnalysisContext(parse("Token.sol", source))
        MissingAccessControlRule().apply(ctx)
        (finding,) = ctx.findings
        assert finding.line == 3
