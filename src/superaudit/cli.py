# SPDX-License-Identifier: MIT
"""Command line entry point: parse, analyze, report, gate."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections import Counter
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from superaudit.playbooks.compiler import CompiledPlaybook, load_playbook_file
from superaudit.playbooks.registry import sample_playbooks
from superaudit.playbooks.schema import PlaybookError
from superaudit.rules.base import Finding, ProjectRule, Rule, Severity
from superaudit.rules.config import load_mode, load_profile, log_level
from superaudit.rules.engine import AnalysisResult, RuleEngine
from superaudit.rules.registry import basic_rules, rules_for_mode, select_rules
from superaudit.solidity.nodes import SourceUnit
from superaudit.solidity.parser import ParseError, parse_file

log = logging.getLogger(__name__)

SAMPLE_SEPARATOR = "=" * 60


def collect_sources(paths: Sequence[str]) -> list[Path]:
    """Expand files and directories into a sorted, de-duplicated list of ``.sol`` files.

    Raises:
        FileNotFoundError: If a path does not exist.
    """
    found: set[Path] = set()
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            found.update(p for p in path.rglob("*.sol") if p.is_file())
        elif path.is_file():
            found.add(path)
        else:
            raise FileNotFoundError(f"No such file or directory: {raw}")
    return sorted(found)


def build_rules(
    *,
    mode: str | None,
    rule_ids: str | None,
    playbook: CompiledPlaybook | None,
) -> list[Rule | ProjectRule]:
    """Active rule list: explicit ids, else basic rules with a playbook, else the mode's built-ins.

    Playbook rules always follow the built-ins.

    Raises:
        ValueError: Unknown mode, or rule ids that match nothing.
    """
    builtins: list[Rule | ProjectRule]
    if rule_ids:
        builtins = list(select_rules(rule_ids.split(",")))
    elif playbook is not None and mode is None:
        builtins = list(basic_rules())
    else:
        builtins = list(rules_for_mode(load_mode(mode)))
    if playbook is not None:
        builtins.extend(playbook.rules)
    return builtins


def summarize(findings: Sequence[Finding]) -> dict[str, int]:
    counts = Counter(f.severity for f in findings)
    return {
        "errors": counts[Severity.ERROR],
        "warnings": counts[Severity.WARNING],
        "info": counts[Severity.INFO],
        "total": len(findings),
    }


def format_console(result: AnalysisResult) -> str:
    """Human-readable report, findings grouped by file."""
    if not result.findings:
        lines = ["No issues found."]
    else:
        lines = ["Static Analysis Report", ""]
        current: str | None = None
        for f in result.findings:
            if f.file != current:
                if current is not None:
                    lines.append("")
                lines.append(f.file)
                current = f.file
            lines.append(f"  {f.file}:{f.line}:{f.column} [{f.severity.label.capitalize()}] {f.rule_id}: {f.message}")
        summary = summarize(result.findings)
        lines += ["", "Summary:"]
        for key, label in (("errors", "Errors"), ("warnings", "Warnings"), ("info", "Info")):
            if summary[key]:
                lines.append(f"  {label}: {summary[key]}")
        lines.append(f"  Total issues: {summary['total']}")
    for failure in result.failures:
        lines.append(f"Rule {failure.rule_id} failed on {failure.file}: {failure.error}")
    return "\n".join(lines)


def format_json(result: AnalysisResult, *, profile: str, gate_failed: bool) -> str:
    payload: dict[str, Any] = {
        "findings": [f.to_dict() for f in result.findings],
        "failures": [{"rule_id": x.rule_id, "file": x.file, "error": x.error} for x in result.failures],
        "summary": summarize(result.findings),
        "gate": {"profile": profile, "failed": gate_failed},
    }
    return json.dumps(payload, indent=2)


def print_samples() -> None:
    for name, text in sample_playbooks().items():
        print(SAMPLE_SEPARATOR)
        print(f"# {name}")
        print(SAMPLE_SEPARATOR)
        print(text.rstrip())
        print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="superaudit", description="Static security analysis for Solidity")
    parser.add_argument("paths", nargs="*", help="Solidity files or directories to analyze")
    parser.add_argument("--playbook", default=None, help="YAML playbook whose checks run after the built-ins")
    parser.add_argument(
        "--mode",
        choices=["basic", "advanced", "full"],
        default=None,
        help="Analysis mode (overrides SUPERAUDIT_MODE env var)",
    )
    parser.add_argument("--rules", default=None, help="Comma-separated built-in rule ids to run")
    parser.add_argument(
        "--profile",
        choices=["general", "strict", "pedantic"],
        default=None,
        help="Gate profile (overrides SUPERAUDIT_PROFILE env var)",
    )
    parser.add_argument("--format", choices=["console", "json"], default="console", dest="output_format")
    parser.add_argument("--workers", type=int, default=1, help="Files analyzed in parallel")
    parser.add_argument("--show-samples", action="store_true", help="Print the bundled sample playbooks and exit")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the analyzer. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=log_level(), format="%(levelname)s %(name)s: %(message)s")

    if args.show_samples:
        print_samples()
        return 0
    if not args.paths:
        parser.error("at least one path is required")
    if args.workers < 1:
        parser.error("--workers must be at least 1")

    try:
        profile = load_profile(args.profile)
    except ValueError as exc:
        print(f"error: invalid profile: {exc}", file=sys.stderr)
        return 1

    playbook: CompiledPlaybook | None = None
    if args.playbook:
        try:
            playbook = load_playbook_file(args.playbook)
        except PlaybookError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        for problem in [*playbook.validation_errors, *playbook.compile_errors]:
            print(f"warning: playbook {playbook.spec.meta.name}: {problem}", file=sys.stderr)

    try:
        rules = build_rules(mode=args.mode, rule_ids=args.rules, playbook=playbook)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    try:
        sources = collect_sources(args.paths)
        units: list[SourceUnit] = [parse_file(p) for p in sources]
    except ParseError as exc:
        print(f"error: parse error: {exc}", file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    log.info("Analyzing %d file(s) with %d rule(s)", len(units), len(rules))

    engine = RuleEngine(rules)
    result = engine.run(units, workers=args.workers)
    gate_failed = engine.check_gate(result.findings, profile)

    if args.output_format == "json":
        print(format_json(result, profile=profile.name, gate_failed=gate_failed))
    else:
        print(format_console(result))
        if gate_failed:
            print(f"Gate FAILED (profile={profile.name})")
    return 1 if gate_failed else 0
