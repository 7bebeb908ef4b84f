# SPDX-License-Identifier: MIT
"""Declarative YAML playbooks compiled into engine rules."""

from superaudit.playbooks.compiler import (
    CompiledPlaybook,
    CompileError,
    PlaybookRule,
    compile_check,
    compile_playbook,
    load_playbook,
    load_playbook_file,
    render_message,
)
from superaudit.playbooks.parser import parse_playbook, parse_playbook_file
from superaudit.playbooks.predicates import PREDICATES
from superaudit.playbooks.registry import PlaybookRegistry, RegisteredPlaybook, sample_playbooks
from superaudit.playbooks.schema import (
    PlaybookError,
    PlaybookMeta,
    PlaybookSpec,
    PlaybookValidationError,
    StaticCheckSpec,
)

__all__ = [
    "PREDICATES",
    "CompileError",
    "CompiledPlaybook",
    "PlaybookError",
    "PlaybookMeta",
    "PlaybookRegistry",
    "PlaybookRule",
    "PlaybookSpec",
    "PlaybookValidationError",
    "RegisteredPlaybook",
    "StaticCheckSpec",
    "compile_check",
    "compile_playbook",
    "load_playbook",
    "load_playbook_file",
    "parse_playbook",
    "parse_playbook_file",
    "render_message",
    "sample_playbooks",
]
