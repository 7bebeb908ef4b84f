# SPDX-License-Identifier: MIT
"""Solidity parser: a tree-sitter concrete syntax tree mapped onto the uniform AST.

tree-sitter recovers from syntax errors; this module does not. Any ERROR or
MISSING node in the tree becomes a ParseError at its position, so a returned
SourceUnit always comes from a complete parse.
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Any

from tree_sitter import Language, Parser
from tree_sitter import Node as TSNode
from tree_sitter_language_pack import get_language

from superaudit.solidity.nodes import Node, NodeKind, SourceLocation, SourceUnit


class ParseError(Exception):
    """Raised when a source file is not valid Solidity (fatal for the whole run)."""

    def __init__(self, message: str, file: str, line: int, column: int) -> None:
        self.message = message
        self.file = file
        self.line = line
        self.column = column
        super().__init__(f"{file}:{line}:{column}: {message}")


@functools.cache
def _language() -> Language:
    return get_language("solidity")


_CONTRACT_KINDS = {
    "contract_declaration": "contract",
    "interface_declaration": "interface",
    "library_declaration": "library",
}
_DATA_LOCATIONS = frozenset({"memory", "storage", "calldata"})
_NUMBER_UNITS = frozenset(
    {"wei", "gwei", "szabo", "finney", "ether", "seconds", "minutes", "hours", "days", "weeks", "years"}
)
_NAMED_PAIRS = frozenset({"struct_field_assignment", "call_struct_argument"})
_WRAPPERS = frozenset({"expression", "parenthesized_expression", "call_argument"})


class _Offsets:
    """Maps tree-sitter byte offsets onto ``str`` indices."""

    def __init__(self, source: str, data: bytes) -> None:
        self._table: list[int] | None = None
        if len(data) != len(source):
            table: list[int] = []
            for index, ch in enumerate(source):
                table.extend([index] * len(ch.encode("utf-8", "surrogatepass")))
            table.append(len(source))
            self._table = table

    def __call__(self, byte: int) -> int:
        return byte if self._table is None else self._table[byte]


def _first_error(root: TSNode) -> TSNode | None:
    if not root.has_error:
        return None
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        stack.extend(reversed([c for c in node.children if c.has_error or c.is_missing]))
    return None


class _Builder:
    def __init__(self, path: str, source: str, data: bytes) -> None:
        self.path = path
        self.source = source
        self.offset = _Offsets(source, data)
        self.last: TSNode | None = None

    # --- positions ---

    def loc(self, ts: TSNode) -> SourceLocation:
        row, byte_col = ts.start_point
        start = self.offset(ts.start_byte)
        line_start = self.offset(ts.start_byte - byte_col)
        return SourceLocation(self.path, row + 1, start - line_start + 1)

    def text(self, ts: TSNode) -> str:
        return self.source[self.offset(ts.start_byte) : self.offset(ts.end_byte)]

    def error(self, message: str, ts: TSNode) -> ParseError:
        loc = self.loc(ts)
        return ParseError(message, self.path, loc.line, loc.column)

    def syntax_error(self, ts: TSNode) -> ParseError:
        if ts.is_missing:
            return self.error(f"Expected {ts.type!r}", ts)
        leaf = ts
        while leaf.child_count:
            leaf = leaf.children[0]
        snippet = self.text(leaf).strip() or self.text(ts).strip()[:20]
        if not snippet:
            return self.error("Unexpected end of file", ts)
        return self.error(f"Unexpected {snippet!r}", ts)

    def node(
        self,
        kind: NodeKind,
        ts: TSNode,
        children: list[Node] | tuple[Node, ...] = (),
        role: str = "",
        *,
        until: TSNode | None = None,
        **attrs: Any,
    ) -> Node:
        end = (until or ts).end_byte
        return Node(
            kind=kind,
            loc=self.loc(ts),
            span=(self.offset(ts.start_byte), self.offset(end)),
            role=role,
            attrs=attrs,
            children=tuple(children),
        )

    # --- tree helpers ---

    @staticmethod
    def named(ts: TSNode) -> list[TSNode]:
        return [c for c in ts.named_children if c.type != "comment"]

    @staticmethod
    def has_token(ts: TSNode, token: str) -> bool:
        return any(c.type == token for c in ts.children)

    def path_name(self, ts: TSNode) -> str:
        return "".join(self.text(ts).split())

    # --- source unit ---

    def source_unit(self, root: TSNode) -> SourceUnit:
        children: list[Node] = []
        for ts in self.named(root):
            if ts.type == "pragma_directive":
                children.append(self.pragma(ts))
            elif ts.type == "import_directive":
                children.append(self.import_directive(ts))
            elif ts.type == "using_directive":
                children.append(self.node(NodeKind.USING, ts, role="using"))
            elif ts.type in _CONTRACT_KINDS:
                children.append(self.contract(ts))
            else:
                member = self.member(ts, "member")
                if member is not None:
                    children.append(member)
        root_node = Node(
            kind=NodeKind.SOURCE_UNIT,
            loc=SourceLocation(self.path, 1, 1),
            span=(0, len(self.source)),
            attrs={"path": self.path},
            children=tuple(children),
        )
        contracts = tuple(c for c in children if c.kind is NodeKind.CONTRACT)
        return SourceUnit(path=self.path, source=self.source, root=root_node, contracts=contracts)

    def pragma(self, ts: TSNode) -> Node:
        body = self.text(ts).strip()
        body = body.removeprefix("pragma").removesuffix(";").strip()
        name, _, value = body.partition(" ")
        if not value and name.startswith("solidity"):
            name, value = "solidity", name.removeprefix("solidity")
        return self.node(NodeKind.PRAGMA, ts, role="pragma", name=name, value=value.strip())

    def import_directive(self, ts: TSNode) -> Node:
        path = None
        stack = [ts]
        while stack:
            cur = stack.pop()
            if cur.type == "string":
                path = self.text(cur)[1:-1]
                break
            stack.extend(reversed(cur.named_children))
        return self.node(NodeKind.IMPORT, ts, role="import", path=path)

    # --- contracts ---

    def contract(self, ts: TSNode) -> Node:
        name = ts.child_by_field_name("name")
        children: list[Node] = []
        body: TSNode | None = ts.child_by_field_name("body")
        for child in self.named(ts):
            if child.type == "inheritance_specifier":
                children.append(self.inheritance(child))
            elif body is None and child.type == "contract_body":
                body = child
        if body is not None:
            for member_ts in self.named(body):
                member = self.member(member_ts, "member")
                if member is not None:
                    children.append(member)
        return self.node(
            NodeKind.CONTRACT,
            ts,
            children,
            role="contract",
            name=self.text(name) if name is not None else "",
            contract_kind=_CONTRACT_KINDS[ts.type],
            abstract=self.has_token(ts, "abstract"),
        )

    def inheritance(self, ts: TSNode) -> Node:
        ancestor = ts.child_by_field_name("ancestor")
        named = self.named(ts)
        if ancestor is None and named:
            ancestor = named[0]
        args = self.arguments([c for c in named if c != ancestor])
        name = self.path_name(ancestor) if ancestor is not None else ""
        return self.node(NodeKind.INHERITANCE, ts, args, role="base", name=name)

    def member(self, ts: TSNode, role: str) -> Node | None:
        kind = ts.type
        if kind in ("function_definition", "constructor_definition", "fallback_receive_definition"):
            return self.function(ts, role)
        if kind == "modifier_definition":
            return self.modifier(ts, role)
        if kind in ("state_variable_declaration", "constant_variable_declaration"):
            return self.state_variable(ts, role)
        if kind == "struct_declaration":
            return self.struct(ts, role)
        if kind == "enum_declaration":
            values = tuple(self.text(v) for v in self.descendants(ts, "enum_value"))
            return self.node(NodeKind.ENUM, ts, role=role, name=self.field_text(ts, "name"), values=values)
        if kind == "event_definition":
            params = [self.parameter(p, "parameter") for p in self.descendants(ts, "event_parameter")]
            return self.node(
                NodeKind.EVENT,
                ts,
                params,
                role=role,
                name=self.field_text(ts, "name"),
                anonymous=self.has_token(ts, "anonymous"),
            )
        if kind == "error_declaration":
            params = [self.parameter(p, "parameter") for p in self.descendants(ts, "error_parameter")]
            return self.node(NodeKind.ERROR, ts, params, role=role, name=self.field_text(ts, "name"))
        if kind == "using_directive":
            return self.node(NodeKind.USING, ts, role=role)
        if kind == "user_defined_type_definition":
            return self.node(NodeKind.USER_TYPE, ts, role=role, name=self.field_text(ts, "name"), definition=True)
        return None

    def field_text(self, ts: TSNode, field_name: str) -> str | None:
        child = ts.child_by_field_name(field_name)
        return self.text(child) if child is not None else None

    def descendants(self, ts: TSNode, node_type: str) -> list[TSNode]:
        """Nodes of ``node_type`` directly under ``ts`` or under one of its ``*_body`` children."""
        found: list[TSNode] = []
        for child in self.named(ts):
            if child.type == node_type:
                found.append(child)
            elif child.type.endswith("_body") or child.type.endswith("_list"):
                found.extend(c for c in self.named(child) if c.type == node_type)
        return found

    def state_variable(self, ts: TSNode, role: str) -> Node:
        type_ts = ts.child_by_field_name("type")
        children = [self.type_name(type_ts, "type")] if type_ts is not None else []
        value = ts.child_by_field_name("value")
        if value is not None:
            children.append(self.expr(value, "value"))
        visibility = next((self.text(c) for c in ts.children if c.type == "visibility"), "internal")
        return self.node(
            NodeKind.STATE_VARIABLE,
            ts,
            children,
            role=role,
            name=self.field_text(ts, "name"),
            visibility=visibility,
            constant=ts.type == "constant_variable_declaration" or self.has_token(ts, "constant"),
            immutable=self.has_token(ts, "immutable"),
        )

    def struct(self, ts: TSNode, role: str) -> Node:
        fields: list[Node] = []
        for member in self.descendants(ts, "struct_member"):
            type_ts = member.child_by_field_name("type")
            ftype = [self.type_name(type_ts, "type")] if type_ts is not None else []
            fields.append(
                self.node(NodeKind.PARAMETER, member, ftype, role="field", name=self.field_text(member, "name"))
            )
        return self.node(NodeKind.STRUCT, ts, fields, role=role, name=self.field_text(ts, "name"))

    def parameter(self, ts: TSNode, role: str) -> Node:
        type_ts = ts.child_by_field_name("type")
        children = [self.type_name(type_ts, "type")] if type_ts is not None else []
        location = next((self.text(c) for c in ts.children if self.text(c) in _DATA_LOCATIONS), None)
        return self.node(
            NodeKind.PARAMETER,
            ts,
            children,
            role=role,
            name=self.field_text(ts, "name"),
            location=location,
            indexed=self.has_token(ts, "indexed"),
        )

    def parameters(self, ts: TSNode, role: str) -> list[Node]:
        return [self.parameter(p, role) for p in self.descendants(ts, "parameter")]

    def function(self, ts: TSNode, role: str) -> Node:
        if ts.type == "constructor_definition":
            name: str | None = "constructor"
            function_kind = "constructor"
        elif ts.type == "fallback_receive_definition":
            function_kind = "receive" if self.has_token(ts, "receive") else "fallback"
            name = function_kind
        else:
            name = self.field_text(ts, "name")
            function_kind = "function"
        children = self.parameters(ts, "parameter")
        attrs: dict[str, Any] = {"visibility": None, "mutability": None, "virtual": False, "override": False}
        body: TSNode | None = ts.child_by_field_name("body")
        for child in ts.children:
            if child.type == "visibility":
                attrs["visibility"] = self.text(child)
            elif child.type == "state_mutability" or child.type == "payable":
                attrs["mutability"] = self.text(child)
            elif child.type == "virtual":
                attrs["virtual"] = True
            elif child.type == "override_specifier":
                attrs["override"] = True
            elif child.type == "modifier_invocation":
                children.append(self.modifier_invocation(child))
            elif child.type in ("return_type_definition", "return_parameters"):
                children.extend(self.parameters(child, "return_parameter"))
            elif body is None and child.type == "function_body":
                body = child
        if attrs["visibility"] is None:
            attrs["visibility"] = "external" if function_kind in ("receive", "fallback") else "public"
        if body is not None:
            children.append(self.block(body, "body"))
        return self.node(
            NodeKind.FUNCTION, ts, children, role=role, name=name or function_kind, function_kind=function_kind, **attrs
        )

    def modifier_invocation(self, ts: TSNode) -> Node:
        named = self.named(ts)
        path = [c for c in named if c.type not in ("call_argument", *_NAMED_PAIRS)]
        args = [c for c in named if c.type in ("call_argument", *_NAMED_PAIRS)]
        name = ".".join(self.text(c) for c in path) if path else self.text(ts).split("(")[0].strip()
        return self.node(
            NodeKind.MODIFIER_INVOCATION, ts, self.arguments(args), role="modifier", name=name.replace(" ", "")
        )

    def modifier(self, ts: TSNode, role: str) -> Node:
        children = self.parameters(ts, "parameter")
        body: TSNode | None = ts.child_by_field_name("body")
        if body is None:
            body = next((c for c in ts.children if c.type == "function_body"), None)
        if body is not None:
            children.append(self.block(body, "body"))
        return self.node(
            NodeKind.MODIFIER,
            ts,
            children,
            role=role,
            name=self.field_text(ts, "name"),
            virtual=self.has_token(ts, "virtual"),
            override=self.has_token(ts, "override_specifier"),
        )

    # --- types ---

    def type_name(self, ts: TSNode, role: str = "") -> Node:
        kind = ts.type
        if kind == "primitive_type":
            return self.node(NodeKind.ELEMENTARY_TYPE, ts, role=role, name=" ".join(self.text(ts).split()))
        if kind in ("user_defined_type", "identifier", "type_alias"):
            return self.node(NodeKind.USER_TYPE, ts, role=role, name=self.path_name(ts))
        key = ts.child_by_field_name("key_type")
        value = ts.child_by_field_name("value_type")
        if key is not None and value is not None:
            return self.node(
                NodeKind.MAPPING_TYPE, ts, [self.type_name(key, "key"), self.type_name(value, "value")], role=role
            )
        named = self.named(ts)
        children = ts.children
        if children and children[0].type == "function":
            params = self.parameters(ts, "parameter")
            for child in named:
                if child.type in ("return_type_definition", "return_parameters"):
                    params.extend(self.parameters(child, "return_parameter"))
            return self.node(NodeKind.FUNCTION_TYPE, ts, params, role=role)
        if self.has_token(ts, "[") and named:
            parts = [self.type_name(named[0], "base")]
            if len(named) > 1:
                parts.append(self.expr(named[1], "length"))
            return self.node(NodeKind.ARRAY_TYPE, ts, parts, role=role)
        if len(named) == 1:
            return self.type_name(named[0], role)
        return self.node(NodeKind.USER_TYPE, ts, role=role, name=self.path_name(ts))

    # --- statements ---

    def block(self, ts: TSNode, role: str = "") -> Node:
        kind = NodeKind.UNCHECKED_BLOCK if self.has_token(ts, "unchecked") else NodeKind.BLOCK
        statements = [self.statement(c, "statement") for c in self.named(ts)]
        return self.node(kind, ts, statements, role=role)

    def statement(self, ts: TSNode, role: str) -> Node:
        kind = ts.type
        if kind in ("block_statement", "function_body"):
            return self.block(ts, role)
        if kind == "expression_statement":
            return self.expression_statement(ts, role)
        if kind == "variable_declaration_statement":
            return self.variable_declaration(ts, role)
        if kind == "if_statement":
            return self.if_statement(ts, role)
        if kind == "for_statement":
            return self.for_statement(ts, role)
        if kind == "while_statement":
            body, cond = self.body_and_condition(ts)
            return self.node(NodeKind.WHILE, ts, [*cond, *body], role=role)
        if kind == "do_while_statement":
            body, cond = self.body_and_condition(ts)
            return self.node(NodeKind.DO_WHILE, ts, [*body, *cond], role=role)
        if kind == "return_statement":
            values = [self.expr(c, "expression") for c in self.named(ts)[:1]]
            return self.node(NodeKind.RETURN, ts, values, role=role)
        if kind == "emit_statement":
            return self.emit(ts, role)
        if kind == "revert_statement":
            return self.revert(ts, role)
        if kind == "break_statement":
            return self.node(NodeKind.BREAK, ts, role=role)
        if kind == "continue_statement":
            return self.node(NodeKind.CONTINUE, ts, role=role)
        if kind == "assembly_statement":
            return self.node(NodeKind.ASSEMBLY, ts, role=role)
        if kind == "try_statement":
            return self.try_statement(ts, role)
        # Anything else is kept as an opaque expression statement.
        named = self.named(ts)
        return self.node(NodeKind.EXPRESSION_STATEMENT, ts, [self.expr(c, "expression") for c in named[:1]], role=role)

    def expression_statement(self, ts: TSNode, role: str) -> Node:
        named = self.named(ts)
        if not named:
            return self.node(NodeKind.EXPRESSION_STATEMENT, ts, role=role)
        inner = self.unwrap(named[0])
        if inner.type == "identifier" and self.text(inner) == "_":
            return self.node(NodeKind.PLACEHOLDER, ts, role=role)
        if inner.type == "identifier" and self.text(inner) == "throw":
            return self.node(NodeKind.THROW, ts, role=role)
        return self.node(NodeKind.EXPRESSION_STATEMENT, ts, [self.expr(named[0], "expression")], role=role)

    def declared_variable(self, ts: TSNode) -> Node:
        return self.parameter(ts, "variable")

    def variable_declaration(self, ts: TSNode, role: str) -> Node:
        children: list[Node] = []
        names: list[str | None] = []
        value = ts.child_by_field_name("value")
        for child in self.named(ts):
            if child.type == "variable_declaration":
                var = self.declared_variable(child)
                children.append(var)
                names.append(var.attrs["name"])
            elif child.type == "variable_declaration_tuple":
                current: str | None = None
                for part in child.children:
                    if part.type == "variable_declaration":
                        var = self.declared_variable(part)
                        children.append(var)
                        current = var.attrs["name"]
                    elif part.type in (",", ")"):
                        names.append(current)
                        current = None
            elif value is None and child.type != "comment":
                value = child
        if value is not None:
            children.append(self.expr(value, "value"))
        return self.node(NodeKind.VARIABLE_DECLARATION, ts, children, role=role, names=tuple(names))

    def if_statement(self, ts: TSNode, role: str) -> Node:
        cond = ts.child_by_field_name("condition")
        then = ts.child_by_field_name("body")
        other = ts.child_by_field_name("else")
        if cond is None or then is None:
            named = self.named(ts)
            cond, then = named[0], named[1]
            other = named[2] if len(named) > 2 else None
        children = [self.expr(cond, "condition"), self.statement(then, "then")]
        if other is not None:
            children.append(self.statement(other, "else"))
        return self.node(NodeKind.IF, ts, children, role=role)

    def for_statement(self, ts: TSNode, role: str) -> Node:
        init: TSNode | None = None
        cond: TSNode | None = None
        update: TSNode | None = None
        body: TSNode | None = ts.child_by_field_name("body")
        slot = -1
        for child in ts.children:
            if child.type == "(" and slot < 0:
                slot = 0
            elif child.type == ")" and slot >= 0:
                slot = 3
            elif slot in (0, 1) and child.type == ";":
                slot += 1
            elif slot >= 0 and child.is_named and child.type != "comment":
                if slot == 0:
                    init, slot = child, 1
                elif slot == 1:
                    cond, slot = child, 2
                elif slot == 2:
                    update = child
                elif body is None:
                    body = child
        children: list[Node] = []
        if init is not None:
            children.append(self.statement(init, "init"))
        if cond is not None:
            if cond.type == "expression_statement":
                inner = self.named(cond)
                cond = inner[0] if inner else None
            if cond is not None:
                children.append(self.expr(cond, "condition"))
        if update is not None:
            children.append(self.expr(update, "update"))
        if body is not None:
            children.append(self.statement(body, "body"))
        return self.node(NodeKind.FOR, ts, children, role=role)

    def body_and_condition(self, ts: TSNode) -> tuple[list[Node], list[Node]]:
        body = ts.child_by_field_name("body")
        cond = ts.child_by_field_name("condition")
        named = self.named(ts)
        if body is None or cond is None:
            stmts = [c for c in named if c.type.endswith("_statement")]
            exprs = [c for c in named if not c.type.endswith("_statement")]
            body = body or (stmts[0] if stmts else None)
            cond = cond or (exprs[0] if exprs else None)
        return (
            [self.statement(body, "body")] if body is not None else [],
            [self.expr(cond, "condition")] if cond is not None else [],
        )

    def emit(self, ts: TSNode, role: str) -> Node:
        named = self.named(ts)
        name_ts = ts.child_by_field_name("name") or (named[0] if named else None)
        if name_ts is None:
            return self.node(NodeKind.EMIT, ts, role=role, event=None)
        callee = self.expr(name_ts, "callee")
        args = self.arguments([c for c in named if c != name_ts])
        close = next((c for c in reversed(ts.children) if c.type == ")"), ts)
        call = self.node(NodeKind.CALL, name_ts, [callee, *args], role="expression", until=close)
        event = callee.attrs.get("name") or callee.attrs.get("member")
        return self.node(NodeKind.EMIT, ts, [call], role=role, event=event)

    def revert(self, ts: TSNode, role: str) -> Node:
        error = ts.child_by_field_name("error")
        arg_nodes: list[TSNode] = []
        for child in self.named(ts):
            if child == error:
                continue
            if child.type == "revert_arguments":
                arg_nodes.extend(self.named(child))
            else:
                arg_nodes.append(child)
        args = self.arguments(arg_nodes)
        if error is None:
            return self.node(NodeKind.REVERT, ts, args, role=role)
        close = next((c for c in reversed(ts.children) if c.type != ";"), ts)
        callee = self.expr(error, "callee")
        call = self.node(NodeKind.CALL, error, [callee, *args], role="error", until=close)
        return self.node(NodeKind.REVERT, ts, [call], role=role)

    def try_statement(self, ts: TSNode, role: str) -> Node:
        children: list[Node] = []
        attempt = ts.child_by_field_name("attempt")
        body = ts.child_by_field_name("body")
        named = self.named(ts)
        if attempt is None and named:
            attempt = named[0]
        if attempt is not None:
            children.append(self.expr(attempt, "expression"))
        for child in named:
            if child.type in ("parameter", "return_type_definition", "return_parameters"):
                children.extend(
                    [self.parameter(child, "return_parameter")]
                    if child.type == "parameter"
                    else self.parameters(child, "return_parameter")
                )
            elif body is None and child.type == "block_statement":
                body = child
        if body is not None:
            children.append(self.block(body, "body"))
        for clause in (c for c in named if c.type == "catch_clause"):
            children.append(self.catch_clause(clause))
        return self.node(NodeKind.TRY, ts, children, role=role)

    def catch_clause(self, ts: TSNode) -> Node:
        children = self.parameters(ts, "parameter")
        name = next((self.text(c) for c in self.named(ts) if c.type == "identifier"), None)
        body = ts.child_by_field_name("body") or next(
            (c for c in self.named(ts) if c.type == "block_statement"), None
        )
        if body is not None:
            children.append(self.block(body, "body"))
        return self.node(NodeKind.CATCH, ts, children, role="catch", name=name)

    # --- expressions ---

    def unwrap(self, ts: TSNode) -> TSNode:
        while ts.type in _WRAPPERS:
            named = self.named(ts)
            if len(named) != 1:
                break
            ts = named[0]
        return ts

    def arguments(self, nodes: list[TSNode]) -> list[Node]:
        args: list[Node] = []
        for ts in nodes:
            if ts.type == "comment":
                continue
            if ts.type in _NAMED_PAIRS:
                args.append(self.named_argument(ts, "argument"))
            elif ts.type == "call_argument":
                inner = self.named(ts)
                if any(c.type in _NAMED_PAIRS for c in inner):
                    args.extend(self.named_argument(c, "argument") for c in inner if c.type in _NAMED_PAIRS)
                elif inner and not self.has_token(ts, "{"):
                    args.append(self.expr(inner[0], "argument"))
            else:
                args.append(self.expr(ts, "argument"))
        return args

    def named_argument(self, ts: TSNode, role: str) -> Node:
        name = ts.child_by_field_name("name")
        value = ts.child_by_field_name("value")
        named = self.named(ts)
        if name is None or value is None:
            name, value = named[0], named[-1]
        return self.node(NodeKind.NAMED_ARGUMENT, ts, [self.expr(value, "value")], role=role, name=self.text(name))

    def options(self, ts: TSNode) -> list[Node]:
        """``{name: value, ...}`` pairs of a struct-shaped expression, as NAMED_ARGUMENT nodes."""
        pairs = [c for c in self.named(ts) if c.type in _NAMED_PAIRS]
        if pairs:
            return [self.named_argument(c, "option") for c in pairs]
        options: list[Node] = []
        children = ts.children
        for i, child in enumerate(children):
            if child.type == ":" and 0 < i < len(children) - 1:
                name, value = children[i - 1], children[i + 1]
                options.append(
                    self.node(
                        NodeKind.NAMED_ARGUMENT, name, [self.expr(value, "value")], role="option",
                        until=value, name=self.text(name),
                    )
                )
        return options

    def operator(self, ts: TSNode, *operands: TSNode | None) -> str:
        op = ts.child_by_field_name("operator")
        if op is not None:
            return self.text(op)
        return next((c.type for c in ts.children if not c.is_named and c not in operands), "")

    def expr(self, ts: TSNode, role: str = "") -> Node:
        self.last = ts
        ts = self.unwrap(ts)
        kind = ts.type
        named = self.named(ts)

        if kind == "identifier":
            return self.node(NodeKind.IDENTIFIER, ts, role=role, name=self.text(ts))
        if kind in ("number_literal", "number"):
            parts = self.text(ts).split()
            unit = parts[-1] if len(parts) > 1 and parts[-1] in _NUMBER_UNITS else None
            return self.node(NodeKind.LITERAL, ts, role=role, literal_kind="number", value=parts[0], unit=unit)
        if kind == "boolean_literal" or kind in ("true", "false"):
            return self.node(NodeKind.LITERAL, ts, role=role, literal_kind="bool", value=self.text(ts) == "true")
        if kind in ("string_literal", "string", "unicode_string_literal"):
            return self.string_literal(ts, role)
        if kind == "hex_string_literal":
            raw = self.text(ts)
            value = "".join(part.strip("\"' ") for part in raw.split("hex") if part.strip())
            return self.node(NodeKind.LITERAL, ts, role=role, literal_kind="hex", value=value)
        if kind in ("primitive_type", "type_name"):
            return self.node(NodeKind.TYPE_EXPRESSION, ts, role=role, name=" ".join(self.text(ts).split()))
        if kind == "user_defined_type":
            return self.qualified_name(ts, role)
        if kind == "member_expression":
            obj = ts.child_by_field_name("object") or (named[0] if named else None)
            prop = ts.child_by_field_name("property") or (named[-1] if named else None)
            inner = [self.expr(obj, "expression")] if obj is not None else []
            member = self.text(prop) if prop is not None else ""
            return self.node(NodeKind.MEMBER_ACCESS, ts, inner, role=role, member=member)
        if kind == "call_expression":
            callee_ts = ts.child_by_field_name("function") or named[0]
            callee = self.expr(callee_ts, "callee")
            args = self.arguments([c for c in named if c != callee_ts])
            return self.node(NodeKind.CALL, ts, [callee, *args], role=role)
        if kind == "struct_expression":
            target = ts.child_by_field_name("type") or named[0]
            return self.node(
                NodeKind.CALL_OPTIONS, ts, [self.expr(target, "expression"), *self.options(ts)], role=role
            )
        if kind == "array_access":
            base = ts.child_by_field_name("base") or named[0]
            index = ts.child_by_field_name("index")
            if index is None and len(named) > 1:
                index = named[1]
            parts = [self.expr(base, "base")]
            if index is not None:
                parts.append(self.expr(index, "index"))
            return self.node(NodeKind.INDEX_ACCESS, ts, parts, role=role)
        if kind == "slice_access":
            parts = [self.expr(ts.child_by_field_name("base") or named[0], "base")]
            start = ts.child_by_field_name("from")
            end = ts.child_by_field_name("to")
            if start is not None:
                parts.append(self.expr(start, "index"))
            if end is not None:
                parts.append(self.expr(end, "end"))
            return self.node(NodeKind.INDEX_RANGE, ts, parts, role=role)
        if kind == "binary_expression":
            left = ts.child_by_field_name("left") or named[0]
            right = ts.child_by_field_name("right") or named[-1]
            return self.node(
                NodeKind.BINARY,
                ts,
                [self.expr(left, "left"), self.expr(right, "right")],
                role=role,
                operator=self.operator(ts, left, right),
            )
        if kind in ("assignment_expression", "augmented_assignment_expression"):
            left = ts.child_by_field_name("left") or named[0]
            right = ts.child_by_field_name("right") or named[-1]
            op = self.operator(ts, left, right) if kind == "augmented_assignment_expression" else "="
            return self.node(
                NodeKind.ASSIGNMENT, ts, [self.expr(left, "left"), self.expr(right, "right")], role=role, operator=op
            )
        if kind in ("unary_expression", "update_expression"):
            operand = ts.child_by_field_name("argument") or named[-1]
            op = self.operator(ts, operand)
            prefix = ts.children[0] != operand
            return self.node(NodeKind.UNARY, ts, [self.expr(operand, "operand")], role=role, operator=op, prefix=prefix)
        if kind == "ternary_expression":
            cond = ts.child_by_field_name("condition") or named[0]
            yes = ts.child_by_field_name("consequence") or named[1]
            no = ts.child_by_field_name("alternative") or named[2]
            return self.node(
                NodeKind.CONDITIONAL,
                ts,
                [self.expr(cond, "condition"), self.expr(yes, "true"), self.expr(no, "false")],
                role=role,
            )
        if kind in ("tuple_expression", "parenthesized_expression"):
            commas = sum(1 for c in ts.children if c.type == ",")
            if commas == 0 and len(named) == 1:
                return self.expr(named[0], role)
            components = [self.expr(c, "component") for c in named]
            return self.node(NodeKind.TUPLE, ts, components, role=role, slots=commas + 1)
        if kind == "inline_array_expression":
            return self.node(NodeKind.ARRAY_LITERAL, ts, [self.expr(c, "component") for c in named], role=role)
        if kind == "new_expression":
            type_ts = ts.child_by_field_name("name") or named[0]
            new = self.node(NodeKind.NEW, ts, [self.type_name(type_ts, "type")], role=role)
            args = [c for c in named if c != type_ts]
            if not args and not self.has_token(ts, "("):
                return new
            new = self.node(NodeKind.NEW, ts, [self.type_name(type_ts, "type")], role="callee", until=type_ts)
            return self.node(NodeKind.CALL, ts, [new, *self.arguments(args)], role=role)
        if kind == "type_cast_expression":
            target = named[0]
            callee = self.node(
                NodeKind.TYPE_EXPRESSION, target, role="callee", name=" ".join(self.text(target).split())
            )
            return self.node(NodeKind.CALL, ts, [callee, *self.arguments(named[1:])], role=role)
        if kind == "payable_conversion_expression":
            keyword = ts.children[0]
            callee = self.node(NodeKind.IDENTIFIER, keyword, role="callee", name="payable")
            return self.node(NodeKind.CALL, ts, [callee, *self.arguments(named)], role=role)
        if kind == "meta_type_expression":
            keyword = ts.children[0]
            callee = self.node(NodeKind.IDENTIFIER, keyword, role="callee", name="type")
            args = [self.node(NodeKind.IDENTIFIER, c, role="argument", name=self.path_name(c)) for c in named]
            return self.node(NodeKind.CALL, ts, [callee, *args], role=role)
        if len(named) == 1:
            return self.expr(named[0], role)
        # Unknown shapes keep their sub-expressions reachable.
        return self.node(
            NodeKind.TUPLE, ts, [self.expr(c, "component") for c in named], role=role, slots=len(named)
        )

    def string_literal(self, ts: TSNode, role: str) -> Node:
        pieces = [c for c in self.named(ts) if c.type == "string"] or [ts]
        value = ""
        for piece in pieces:
            raw = self.text(piece).removeprefix("unicode")
            value += raw[1:-1] if len(raw) >= 2 else raw
        return self.node(NodeKind.LITERAL, ts, role=role, literal_kind="string", value=value)

    def qualified_name(self, ts: TSNode, role: str) -> Node:
        parts = [c for c in self.named(ts) if c.type == "identifier"]
        if not parts:
            return self.node(NodeKind.IDENTIFIER, ts, role=role, name=self.path_name(ts))
        node = self.node(NodeKind.IDENTIFIER, parts[0], name=self.text(parts[0]))
        for part in parts[1:]:
            node = self.node(
                NodeKind.MEMBER_ACCESS,
                parts[0],
                [_with_role(node, "expression")],
                until=part,
                member=self.text(part),
            )
        return _with_role(node, role)


def _with_role(node: Node, role: str) -> Node:
    return Node(node.kind, node.loc, node.span, role, node.attrs, node.children)


def parse(path: str, source: str) -> SourceUnit:
    """Parse one Solidity file into a SourceUnit.

    Raises:
        ParseError: With the offending location if the source is not valid.
    """
    data = source.encode("utf-8", "surrogatepass")
    tree = Parser(_language()).parse(data)
    builder = _Builder(path, source, data)
    bad = _first_error(tree.root_node)
    if bad is not None:
        raise builder.syntax_error(bad)
    try:
        return builder.source_unit(tree.root_node)
    except RecursionError:
        where = builder.last or tree.root_node
        raise builder.error("Expression nesting too deep", where) from None


def parse_file(path: str | Path) -> SourceUnit:
    """Read and parse a Solidity file from disk."""
    p = Path(path)
    return parse(str(p), p.read_text(encoding="utf-8"))
