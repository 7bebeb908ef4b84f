# SPDX-License-Identifier: MIT
"""Uniform AST model: one node shape for every Solidity construct."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class NodeKind(StrEnum):
    SOURCE_UNIT = "SourceUnit"
    PRAGMA = "Pragma"
    IMPORT = "Import"
    USING = "Using"
    CONTRACT = "Contract"
    INHERITANCE = "Inheritance"
    STATE_VARIABLE = "StateVariable"
    STRUCT = "Struct"
    ENUM = "Enum"
    EVENT = "Event"
    ERROR = "Error"
    MODIFIER = "Modifier"
    FUNCTION = "Function"
    PARAMETER = "Parameter"
    MODIFIER_INVOCATION = "ModifierInvocation"
    # Types
    ELEMENTARY_TYPE = "ElementaryType"
    USER_TYPE = "UserType"
    MAPPING_TYPE = "MappingType"
    ARRAY_TYPE = "ArrayType"
    FUNCTION_TYPE = "FunctionType"
    # Statements
    BLOCK = "Block"
    UNCHECKED_BLOCK = "UncheckedBlock"
    VARIABLE_DECLARATION = "VariableDeclaration"
    EXPRESSION_STATEMENT = "ExpressionStatement"
    IF = "If"
    FOR = "For"
    WHILE = "While"
    DO_WHILE = "DoWhile"
    RETURN = "Return"
    REVERT = "Revert"
    EMIT = "Emit"
    BREAK = "Break"
    CONTINUE = "Continue"
    THROW = "Throw"
    PLACEHOLDER = "Placeholder"
    ASSEMBLY = "Assembly"
    TRY = "Try"
    CATCH = "Catch"
    # Expressions
    ASSIGNMENT = "Assignment"
    BINARY = "BinaryOperation"
    UNARY = "UnaryOperation"
    CONDITIONAL = "Conditional"
    CALL = "Call"
    CALL_OPTIONS = "CallOptions"
    NAMED_ARGUMENT = "NamedArgument"
    MEMBER_ACCESS = "MemberAccess"
    INDEX_ACCESS = "IndexAccess"
    INDEX_RANGE = "IndexRange"
    IDENTIFIER = "Identifier"
    LITERAL = "Literal"
    TUPLE = "Tuple"
    ARRAY_LITERAL = "ArrayLiteral"
    NEW = "New"
    TYPE_EXPRESSION = "TypeExpression"


STATEMENT_KINDS = frozenset(
    {
        NodeKind.BLOCK,
        NodeKind.UNCHECKED_BLOCK,
        NodeKind.VARIABLE_DECLARATION,
        NodeKind.EXPRESSION_STATEMENT,
        NodeKind.IF,
        NodeKind.FOR,
        NodeKind.WHILE,
        NodeKind.DO_WHILE,
        NodeKind.RETURN,
        NodeKind.REVERT,
        NodeKind.EMIT,
        NodeKind.BREAK,
        NodeKind.CONTINUE,
        NodeKind.THROW,
        NodeKind.PLACEHOLDER,
        NodeKind.ASSEMBLY,
        NodeKind.TRY,
    }
)

LOOP_KINDS = frozenset({NodeKind.FOR, NodeKind.WHILE, NodeKind.DO_WHILE})


@dataclass(frozen=True)
class SourceLocation:
    """File, 1-based line and 1-based column of a node's first token."""

    file: str
    line: int
    column: int


@dataclass(frozen=True, eq=False)
class Node:
    """A single AST node.

    ``role`` names the slot this node fills in its parent (``condition``,
    ``body``, ``callee`` ...). ``attrs`` carries scalar data such as names,
    operators and literal values. Nodes hash by identity so they can key caches.
    """

    kind: NodeKind
    loc: SourceLocation
    span: tuple[int, int]
    role: str = ""
    attrs: dict[str, Any] = field(default_factory=dict)
    children: tuple[Node, ...] = ()

    @property
    def line(self) -> int:
        return self.loc.line

    @property
    def column(self) -> int:
        return self.loc.column

    @property
    def name(self) -> str | None:
        return self.attrs.get("name")

    def child(self, role: str) -> Node | None:
        """Return the first child filling ``role``, or None."""
        for c in self.children:
            if c.role == role:
                return c
        return None

    def children_with(self, role: str) -> list[Node]:
        return [c for c in self.children if c.role == role]

    def walk(self) -> Iterator[Node]:
        """Depth-first, parent-before-child traversal including self."""
        stack: list[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def walk_with_ancestors(self, ancestors: tuple[Node, ...] = ()) -> Iterator[tuple[Node, tuple[Node, ...]]]:
        """Like walk(), but also yield the chain of ancestors (outermost first)."""
        stack: list[tuple[Node, tuple[Node, ...]]] = [(self, ancestors)]
        while stack:
            node, chain = stack.pop()
            yield node, chain
            inner = (*chain, node)
            stack.extend((c, inner) for c in reversed(node.children))

    def find(self, *kinds: NodeKind) -> list[Node]:
        """All nodes in this subtree (including self) whose kind is in ``kinds``."""
        wanted = frozenset(kinds)
        return [n for n in self.walk() if n.kind in wanted]

    def text(self, source: str) -> str:
        return source[self.span[0] : self.span[1]]


@dataclass(frozen=True)
class SourceUnit:
    """One parsed file: path, raw text, root node and top-level contracts."""

    path: str
    source: str
    root: Node
    contracts: tuple[Node, ...]

    @property
    def pragmas(self) -> list[Node]:
        return self.root.children_with("pragma")
