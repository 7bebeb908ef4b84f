# SPDX-License-Identifier: MIT
"""Tests for superaudit.playbooks.compiler and the predicate vocabulary."""

from __future__ import annotations

from typing import Any

import pytest

from superaudit.playbooks.compiler import (
    CompileError,
    PlaybookRule,
    compile_check,
    compile_playbook,
    load_playbook,
    render_message,
)
from superaudit.playbooks.predicates import PREDICATES
from superaudit.playbooks.schema import PlaybookError, StaticCheckSpec
from superaudit.rules.base import Finding, RuleKind, Severity
from superaudit.rules.engine import RuleEngine
from superaudit.solidity.parser import parse

VAULT = """\
pragma solidity ^0.8.0;
contract Vault {
    address owner;
    mapping(address => uint256) balances;
    function withdraw() external {
        (bool ok, ) = msg.sender.call{value: balances[msg.sender]}("");
        balances[msg.sender] = 0;
    }
    function setOwner(address o) external { owner = o; }
    function adminSet(address o) external { require(msg.sender == owner); owner = o; }
}
"""


def _check(**overrides: Any) -> StaticCheckSpec:
    data: dict[str, Any] = {
        "id": "c",
        "severity": "warning",
        "target": "function",
        "match": ["checks-caller"],
        "message": "m",
    }
    data.update(overrides)
    return StaticCheckSpec.model_validate(data)


def _findings(rule: PlaybookRule, *sources: tuple[str, str]) -> list[Finding]:
    units = [parse(path, text) for path, text in sources]
    return RuleEngine([rule]).run(units).findings


class TestRenderMessage:
    def test_known_placeholders(self) -> None:
        values = {"contract": "C", "function": "f", "name": "n", "file": "a.sol", "line": "3", "rule": "r"}
        assert render_message("{contract}.{function} at {file}:{line} ({rule}, {name})", values) == (
            "C.f at a.sol:3 (r, n)"
        )

    def test_unknown_braces_are_literal(self) -> None:
        values = {"contract": "C", "function": "", "name": "", "file": "", "line": "", "rule": ""}
        assert render_message("{contract} {owner} {{x}}", values) == "C {owner} {{x}}"


class TestCompileCheck:
    def test_unknown_predicate(self) -> None:
        with pytest.raises(CompileError) as exc_info:
            compile_check(_check(match=["eval"]))
        assert exc_info.value == CompileError("c", "unknown predicate 'eval'")

    def test_target_mismatch(self) -> None:
        with pytest.raises(CompileError, match=r"cannot inspect target\(s\) \['function'\]"):
            compile_check(_check(match=["inside-loop"]))

    def test_project_only_predicate_in_file_scope(self) -> None:
        with pytest.raises(CompileError, match="requires scope: project"):
            compile_check(_check(target="contract", match=["duplicate-name"]))

    def test_invalid_parameters(self) -> None:
        with pytest.raises(CompileError, match="invalid parameters for 'external-call': kind: literal_error"):
            compile_check(_check(match=[{"external-call": {"kind": "weird"}}]))

    def test_unknown_parameter(self) -> None:
        with pytest.raises(CompileError, match="extra_forbidden"):
            compile_check(_check(match=[{"external-call": {"gas": 1}}]))

    def test_positional_args_without_primary(self) -> None:
        with pytest.raises(CompileError, match="takes no arguments"):
            compile_check(_check(match=[{"checks-caller": 1}]))

    def test_positional_shorthand(self) -> None:
        rule = compile_check(_check(match=[{"visibility": "external"}]))
        assert rule.predicates[0].params.values == ("external",)

    def test_float_version_shorthand(self) -> None:
        rule = compile_check(_check(target="contract", match=[{"pragma-below": 0.8}]))
        assert rule.predicates[0].params.bound == (0, 8, 0)

    def test_rule_attributes(self) -> None:
        rule = compile_check(_check(severity="error", description="desc"), playbook="pb")
        assert rule.id == "c"
        assert rule.severity is Severity.ERROR
        assert rule.description == "desc"
        assert rule.playbook == "pb"
        assert "pb" in repr(rule)

    def test_description_defaults_to_message(self) -> None:
        assert compile_check(_check()).description == "m"


class TestRuleKinds:
    def test_ast(self) -> None:
        assert compile_check(_check()).kind is RuleKind.AST

    def test_cfg_when_any_predicate_needs_graph(self) -> None:
        rule = compile_check(_check(match=["checks-caller", "external-call-before-write"]))
        assert rule.kind is RuleKind.CFG

    def test_project_scope(self) -> None:
        rule = compile_check(_check(target="contract", scope="project", match=["duplicate-name"]))
        assert rule.kind is RuleKind.PROJECT


class TestVocabulary:
    def test_is_closed_and_named_consistently(self) -> None:
        assert all(name == definition.name for name, definition in PREDICATES.items())
        assert "external-call-before-write" in PREDICATES
        assert "eval" not in PREDICATES

    def test_project_only_predicates(self) -> None:
        assert {name for name, d in PREDICATES.items() if d.project_only} == {"duplicate-name"}


class TestCompiledRulesRun:
    def test_name_and_caller_check(self) -> None:
        rule = compile_check(
            _check(
                match=[{"name-matches": "set*"}, {"not": "checks-caller"}],
                message="{contract}.{function} is unguarded",
            )
        )
        (finding,) = _findings(rule, ("Vault.sol", VAULT))
        assert finding.line == 9
        assert finding.message == "Vault.setOwner is unguarded"
        assert finding.severity is Severity.WARNING

    def test_negated_name(self) -> None:
        rule = compile_check(_check(match=[{"not": {"name-matches": "set*"}}, {"visibility": "external"}]))
        assert [f.line for f in _findings(rule, ("Vault.sol", VAULT))] == [5, 10]

    def test_call_target_name_placeholder(self) -> None:
        source = 'contract C { function f(address a) public { a.call(""); } }'
        rule = compile_check(
            _check(
                target="call",
                match=[{"external-call": "low-level"}, "return-value-ignored"],
                message="{name} result ignored in {function}",
            )
        )
        (finding,) = _findings(rule, ("C.sol", source))
        assert finding.message == "call result ignored in f"

    def test_call_inside_loop(self) -> None:
        source = (
            "contract P {\n"
            "    function pay(address[] memory to) public {\n"
            "        for (uint i = 0; i < to.length; i++) { payable(to[i]).transfer(1); }\n"
            "        payable(msg.sender).transfer(1);\n"
            "    }\n"
            "}\n"
        )
        rule = compile_check(_check(target="call", match=[{"external-call": {"with_value": True}}, "inside-loop"]))
        assert [f.line for f in _findings(rule, ("P.sol", source))] == [3]

    def test_duplicate_contract_names_across_files(self) -> None:
        rule = compile_check(
            _check(target="contract", scope="project", match=["duplicate-name"], message="{name} twice")
        )
        findings = _findings(
            rule,
            ("a/Token.sol", "contract Token {}\ncontract Unique {}\n"),
            ("b/Token.sol", "contract Token {}\n"),
        )
        assert [(f.file, f.message) for f in findings] == [("a/Token.sol", "Token twice"), ("b/Token.sol", "Token twice")]

    def test_compiled_and_builtin_rules_coexist(self) -> None:
        from superaudit.rules.tx_origin import TxOriginAuthRule

        rule = compile_check(_check(id="pb-check", match=[{"name-matches": "setOwner"}]))
        result = RuleEngine([TxOriginAuthRule(), rule]).run([parse("Vault.sol", VAULT)])
        assert [f.rule_id for f in result.findings] == ["pb-check"]


class TestCompilePlaybook:
    def test_errors_are_collected(self) -> None:
        compiled = load_playbook(
            "meta: {name: mixed}\n"
            "checks:\n"
            "  - {id: good, severity: info, target: call, match: [inside-loop], message: m}\n"
            "  - {id: bad, severity: info, target: call, match: [nope], message: m}\n"
            "  - {id: worse, severity: info, message: m}\n"
        )
        assert [r.id for r in compiled.rules] == ["good"]
        assert compiled.compile_errors == [CompileError("bad", "unknown predicate 'nope'")]
        assert [e.check_id for e in compiled.validation_errors] == ["worse"]
        assert compiled.rules[0].playbook == "mixed"

    def test_compile_playbook_returns_pair(self) -> None:
        spec = load_playbook("meta: {name: empty}\n").spec
        assert compile_playbook(spec) == ([], [])

    def test_whole_document_failure_propagates(self) -> None:
        with pytest.raises(PlaybookError):
            load_playbook("[]")
