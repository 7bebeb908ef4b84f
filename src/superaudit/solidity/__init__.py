# SPDX-License-Identifier: MIT
"""Solidity front end: tree-sitter parsing into a uniform AST, and control-flow graphs."""

from superaudit.solidity.cfg import BasicBlock, ControlFlowGraph, Edge, EdgeKind, build_cfg
from superaudit.solidity.nodes import Node, NodeKind, SourceLocation, SourceUnit
from superaudit.solidity.parser import ParseError, parse, parse_file

__all__ = [
    "BasicBlock",
    "ControlFlowGraph",
    "Edge",
    "EdgeKind",
    "Node",
    "NodeKind",
    "ParseError",
    "SourceLocation",
    "SourceUnit",
    "build_cfg",
    "parse",
    "parse_file",
]
