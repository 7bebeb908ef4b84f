# SPDX-License-Identifier: MIT
"""Tests for the superaudit command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from superaudit.cli import build_rules, collect_sources, main
from superaudit.playbooks.compiler import load_playbook

WALLET = """\
pragma solidity ^0.8.0;
contract Wallet {
    address owner;
    function pay(address to) public {
        require(tx.origin == owner);
        payable(to).transfer(1);
    }
}
"""

CLEAN = "contract Clean { function f() public pure returns (uint256) { return 1; } }\n"

PLAYBOOK = """\
meta: {name: Pay checks}
checks:
  - id: pay-function
    severity: info
    target: function
    match:
      - name-matches: pay
    message: "{contract}.{function} moves funds"
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("SUPERAUDIT_MODE", "SUPERAUDIT_PROFILE", "SUPERAUDIT_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "Wallet.sol").write_text(WALLET, encoding="utf-8")
    sub = tmp_path / "lib"
    sub.mkdir()
    (sub / "Clean.sol").write_text(CLEAN, encoding="utf-8")
    (sub / "README.md").write_text("not solidity", encoding="utf-8")
    return tmp_path


class TestCollectSources:
    def test_directories_are_expanded_and_sorted(self, project: Path) -> None:
        found = collect_sources([str(project), str(project / "Wallet.sol")])
        assert found == [project / "Wallet.sol", project / "lib" / "Clean.sol"]

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            collect_sources([str(tmp_path / "absent.sol")])


class TestBuildRules:
    def test_default_mode_is_full(self) -> None:
        assert len(build_rules(mode=None, rule_ids=None, playbook=None)) == 7

    def test_basic_mode(self) -> None:
        rules = build_rules(mode="basic", rule_ids=None, playbook=None)
        assert [r.id for r in rules] == [
            "tx-origin-auth",
            "unchecked-call-return",
            "missing-access-control",
            "unchecked-arithmetic",
        ]

    def test_explicit_ids_win(self) -> None:
        rules = build_rules(mode="full", rule_ids="reentrancy, tx-origin-auth", playbook=None)
        assert [r.id for r in rules] == ["tx-origin-auth", "reentrancy"]

    def test_playbook_without_mode_adds_basic_rules(self) -> None:
        rules = build_rules(mode=None, rule_ids=None, playbook=load_playbook(PLAYBOOK))
        assert [r.id for r in rules][-2:] == ["unchecked-arithmetic", "pay-function"]
        assert len(rules) == 5

    def test_playbook_with_mode(self) -> None:
        rules = build_rules(mode="advanced", rule_ids=None, playbook=load_playbook(PLAYBOOK))
        assert len(rules) == 8
        assert rules[-1].id == "pay-function"


class TestMain:
    def test_console_report_and_gate(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code = main([str(project)])
        out = capsys.readouterr().out
        assert code == 1
        assert out.startswith("Static Analysis Report")
        assert f"{project / 'Wallet.sol'}:5:" in out
        assert "[Error] tx-origin-auth: Authorization via tx.origin" in out
        assert "  Errors: 1" in out
        assert "  Total issues: 1" in out
        assert "Gate FAILED (profile=general)" in out

    def test_clean_project(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code = main([str(project / "lib")])
        assert code == 0
        assert capsys.readouterr().out.strip() == "No issues found."

    def test_json_output(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code = main([str(project), "--format", "json", "--workers", "2"])
        payload = json.loads(capsys.readouterr().out)
        assert code == 1
        assert payload["summary"] == {"errors": 1, "warnings": 0, "info": 0, "total": 1}
        assert payload["gate"] == {"profile": "general", "failed": True}
        assert payload["findings"][0]["rule_id"] == "tx-origin-auth"
        assert payload["failures"] == []

    def test_rule_selection_can_pass_gate(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([str(project), "--rules", "reentrancy"]) == 0
        assert "No issues found." in capsys.readouterr().out

    def test_playbook_findings(self, project: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        book = tmp_path / "pay.yaml"
        book.write_text(PLAYBOOK, encoding="utf-8")
        code = main([str(project / "Wallet.sol"), "--playbook", str(book), "--format", "json"])
        payload = json.loads(capsys.readouterr().out)
        assert code == 1
        messages = [f["message"] for f in payload["findings"]]
        assert "Wallet.pay moves funds" in messages

    def test_pedantic_profile_from_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        source = tmp_path / "Wallet.sol"
        source.write_text(WALLET, encoding="utf-8")
        book = tmp_path / "pay.yaml"
        book.write_text(PLAYBOOK, encoding="utf-8")
        monkeypatch.setenv("SUPERAUDIT_PROFILE", "pedantic")
        code = main([str(source), "--rules", "reentrancy", "--playbook", str(book)])
        out = capsys.readouterr().out
        assert code == 1
        assert "  Info: 1" in out
        assert "Gate FAILED (profile=pedantic)" in out

    def test_playbook_problems_are_warnings(
        self, project: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        book = tmp_path / "mixed.yaml"
        book.write_text(PLAYBOOK + "  - {id: bad, severity: info, target: call, match: [nope], message: m}\n")
        main([str(project / "lib"), "--playbook", str(book)])
        err = capsys.readouterr().err
        assert "warning: playbook Pay checks: bad: unknown predicate 'nope'" in err

    def test_unusable_playbook(self, project: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        book = tmp_path / "bad.yaml"
        book.write_text("- just a list\n")
        assert main([str(project), "--playbook", str(book)]) == 1
        assert capsys.readouterr().err.startswith("error: Playbook root must be a mapping")

    def test_parse_error(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_path / "Broken.sol").write_text("contract Broken {\n", encoding="utf-8")
        assert main([str(tmp_path)]) == 1
        assert "error: parse error" in capsys.readouterr().err

    def test_missing_path(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([str(tmp_path / "absent")]) == 1
        assert "No such file or directory" in capsys.readouterr().err

    def test_unknown_rule_ids(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([str(project), "--rules", "bogus"]) == 1
        assert "No rules found matching: bogus" in capsys.readouterr().err

    def test_invalid_profile_env(
        self, project: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("SUPERAUDIT_PROFILE", "lenient")
        assert main([str(project)]) == 1
        assert "invalid profile" in capsys.readouterr().err

    def test_no_paths_is_usage_error(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2

    def test_workers_must_be_positive(self, project: Path) -> None:
        with pytest.raises(SystemExit):
            main([str(project), "--workers", "0"])

    def test_show_samples(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--show-samples"]) == 0
        out = capsys.readouterr().out
        assert "# defi-vault" in out
        assert "=" * 60 in out
        assert "external-call-before-write" in out
