# SPDX-License-Identifier: MIT
"""SuperAudit: static security analysis for Solidity with declarative playbooks."""

from superaudit.enrichment import EnrichedFinding, Enrichment, merge_enrichment
from superaudit.playbooks import (
    CompiledPlaybook,
    PlaybookRegistry,
    compile_playbook,
    load_playbook,
    parse_playbook,
)
from superaudit.rules import (
    AnalysisContext,
    AnalysisResult,
    Finding,
    FindingKey,
    RuleEngine,
    RuleFailure,
    RuleKind,
    Severity,
    check_gate,
    load_mode,
    load_profile,
    run_rules,
)
from superaudit.solidity import ControlFlowGraph, Node, NodeKind, ParseError, SourceUnit, build_cfg, parse, parse_file

__all__ = [
    "AnalysisContext",
    "AnalysisResult",
    "CompiledPlaybook",
    "ControlFlowGraph",
    "EnrichedFinding",
    "Enrichment",
    "Finding",
    "FindingKey",
    "Node",
    "NodeKind",
    "ParseError",
    "PlaybookRegistry",
    "RuleEngine",
    "RuleFailure",
    "RuleKind",
    "Severity",
    "SourceUnit",
    "build_cfg",
    "check_gate",
    "compile_playbook",
    "load_mode",
    "load_profile",
    "load_playbook",
    "merge_enrichment",
    "parse",
    "parse_file",
    "parse_playbook",
    "run_rules",
]
