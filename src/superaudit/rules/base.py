# SPDX-License-Identifier: MIT
"""Severity, finding records and the Rule protocols shared by built-in and playbook rules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from superaudit.rules.context import AnalysisContext, ProjectContext


class Severity(IntEnum):
    """The three finding levels, ordered for gate comparison."""

    INFO = 0
    WARNING = 1
    ERROR = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, label: str) -> Severity:
        """Map ``"error"`` / ``"warning"`` / ``"info"`` (any case) to a Severity.

        Raises:
            ValueError: For any other label; the vocabulary is not extensible.
        """
        try:
            return cls[label.strip().upper()]
        except KeyError:
            msg = f"Unknown severity: {label!r}. Valid severities: ['error', 'info', 'warning']"
            raise ValueError(msg) from None


class RuleKind(StrEnum):
    AST = "ast"
    CFG = "cfg"
    PROJECT = "project"


@dataclass(frozen=True)
class FindingKey:
    """Stable identity of a finding, used to merge enrichment without object identity."""

    rule_id: str
    file: str
    line: int
    column: int


@dataclass(frozen=True)
class Finding:
    """A single issue reported by a rule."""

    rule_id: str
    severity: Severity
    message: str
    file: str
    line: int
    column: int
    eligible_for_enrichment: bool = False

    @property
    def key(self) -> FindingKey:
        return FindingKey(self.rule_id, self.file, self.line, self.column)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.label,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "eligible_for_enrichment": self.eligible_for_enrichment,
        }


@dataclass(frozen=True)
class RuleFailure:
    """A rule raised while being applied; its findings for that file were discarded."""

    rule_id: str
    file: str
    error: str


@runtime_checkable
class Rule(Protocol):
    """Protocol that every per-file rule must satisfy (kind is AST or CFG)."""

    id: str
    description: str
    severity: Severity
    kind: RuleKind

    def apply(self, ctx: AnalysisContext) -> None: ...


@runtime_checkable
class ProjectRule(Protocol):
    """Protocol for whole-project rules, run after every file has been analyzed."""

    id: str
    description: str
    severity: Severity
    kind: RuleKind

    def apply_project(self, ctx: ProjectContext) -> None: ...
