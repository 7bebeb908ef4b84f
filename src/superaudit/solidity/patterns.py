# SPDX-License-Identifier: MIT
"""Structural queries over the AST shared by built-in detectors and playbook predicates."""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from superaudit.solidity.nodes import Node, NodeKind, SourceUnit

LOW_LEVEL_CALLS = frozenset({"call", "delegatecall", "staticcall", "callcode"})
VALUE_TRANSFERS = frozenset({"send", "transfer"})
GUARD_FUNCTIONS = frozenset({"require", "assert"})
GLOBAL_OBJECTS = frozenset({"msg", "tx", "block", "abi"})
GLOBAL_IDENTIFIERS = frozenset({"now", "blockhash", "gasleft"})
ARITHMETIC_OPERATORS = frozenset({"+", "-", "*", "**"})
ARITHMETIC_ASSIGNMENTS = frozenset({"+=", "-=", "*="})

# State that tracks funds owed to or held for accounts.
_SENSITIVE_STATE_RE = re.compile(
    r"balance|allowance|deposit|share|stake|credit|reward|debt|owed|claim|fund", re.IGNORECASE
)
_REENTRANCY_FLAG_RE = re.compile(r"(?<!b)lock|entered|reentr|mutex|status", re.IGNORECASE)
_REENTRANCY_MODIFIER_RE = re.compile(r"nonreentrant|noreentr|reentrancy|lock|mutex", re.IGNORECASE)
_PRIVILEGED_STATE_RE = re.compile(
    r"owner|admin|governance|governor|operator|minter|guardian|implementation|paused|treasury|fee",
    re.IGNORECASE,
)
_CALLER_CHECK_CALL_RE = re.compile(
    r"^_?(check|only|require|is|assert|verify|has)_?(owner|role|admin|auth|operator|governance|minter)",
    re.IGNORECASE,
)
_ACCESS_MODIFIER_RE = re.compile(r"only|auth|owner|admin|role|restricted|governance|guard|initializ", re.IGNORECASE)
_VERSION_RE = re.compile(r"(\^|~|>=|<=|>|<|=)?\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def is_sensitive_state_name(name: str) -> bool:
    return bool(_SENSITIVE_STATE_RE.search(name))


def is_privileged_state_name(name: str) -> bool:
    return bool(_PRIVILEGED_STATE_RE.search(name))


def is_reentrancy_guard_modifier(name: str) -> bool:
    return bool(_REENTRANCY_MODIFIER_RE.search(name))


def is_access_control_modifier(name: str) -> bool:
    return bool(_ACCESS_MODIFIER_RE.search(name))


# --- declarations ---


def functions_of(contract: Node) -> list[Node]:
    return [m for m in contract.children if m.kind is NodeKind.FUNCTION]


def modifier_names(function: Node) -> list[str]:
    return [m.attrs["name"] for m in function.children_with("modifier")]


def function_body(function: Node) -> Node | None:
    return function.child("body")


def is_state_changing(function: Node) -> bool:
    return function.attrs.get("mutability") not in ("view", "pure", "constant")


def is_externally_callable(function: Node) -> bool:
    return function.attrs.get("visibility") in ("public", "external")


@dataclass
class TypeIndex:
    """Names declared in one file, used to resolve the static type of expressions."""

    contracts: dict[str, Node] = field(default_factory=dict)
    structs: dict[str, dict[str, Node]] = field(default_factory=dict)
    enums: set[str] = field(default_factory=set)

    @classmethod
    def build(cls, unit: SourceUnit) -> TypeIndex:
        index = cls()
        for node in unit.root.walk():
            if node.kind is NodeKind.CONTRACT:
                index.contracts[node.attrs["name"]] = node
            elif node.kind is NodeKind.STRUCT:
                index.structs[node.attrs["name"]] = {
                    f.attrs["name"]: f.children[0] for f in node.children_with("field")
                }
            elif node.kind is NodeKind.ENUM:
                index.enums.add(node.attrs["name"])
        return index

    def is_library(self, name: str) -> bool:
        c = self.contracts.get(name)
        return c is not None and c.attrs["contract_kind"] == "library"

    def is_contract_type(self, type_name: str) -> bool:
        """True for user types naming a contract or interface (declared or imported)."""
        short = type_name.rsplit(".", 1)[-1]
        if short in self.structs or short in self.enums or self.is_library(short):
            return False
        if short in self.contracts:
            return True
        # Imported types: contracts and interfaces are conventionally capitalized.
        return short[:1].isupper()

    def linearized_bases(self, contract: Node) -> list[Node]:
        """The contract followed by its same-file ancestors, depth first."""
        seen: list[Node] = []
        stack = [contract]
        while stack:
            c = stack.pop()
            if c in seen:
                continue
            seen.append(c)
            for base in c.children_with("base"):
                parent = self.contracts.get(base.attrs["name"].rsplit(".", 1)[-1])
                if parent is not None:
                    stack.append(parent)
        return seen

    def state_variables(self, contract: Node) -> dict[str, Node]:
        """State variable name -> declaration, including same-file ancestors."""
        result: dict[str, Node] = {}
        for c in reversed(self.linearized_bases(contract)):
            for member in c.children:
                if member.kind is NodeKind.STATE_VARIABLE and not member.attrs.get("constant"):
                    result[member.attrs["name"]] = member
        return result


def local_types(function: Node) -> dict[str, Node]:
    """Parameter and local variable name -> type node for one function or modifier."""
    scope: dict[str, Node] = {}
    for node in function.walk():
        if node.kind is NodeKind.PARAMETER and node.attrs.get("name"):
            type_node = node.child("type")
            if type_node is not None:
                scope[node.attrs["name"]] = type_node
    return scope


def scope_types(function: Node, contract: Node | None, index: TypeIndex) -> dict[str, Node]:
    scope: dict[str, Node] = {}
    if contract is not None:
        for name, decl in index.state_variables(contract).items():
            type_node = decl.child("type")
            if type_node is not None:
                scope[name] = type_node
    scope.update(local_types(function))
    return scope


def expression_type(expr: Node, scope: dict[str, Node], index: TypeIndex) -> Node | None:
    """Best-effort static type of an expression, or None when unknown."""
    if expr.kind is NodeKind.IDENTIFIER:
        return scope.get(expr.attrs["name"])
    if expr.kind is NodeKind.INDEX_ACCESS:
        base = expr.child("base")
        base_type = expression_type(base, scope, index) if base is not None else None
        if base_type is None:
            return None
        if base_type.kind is NodeKind.MAPPING_TYPE:
            return base_type.child("value")
        if base_type.kind is NodeKind.ARRAY_TYPE:
            return base_type.child("base")
        return None
    if expr.kind is NodeKind.MEMBER_ACCESS:
        inner = expr.child("expression")
        inner_type = expression_type(inner, scope, index) if inner is not None else None
        if inner_type is not None and inner_type.kind is NodeKind.USER_TYPE:
            fields = index.structs.get(inner_type.attrs["name"].rsplit(".", 1)[-1])
            if fields is not None:
                return fields.get(expr.attrs["member"])
        return None
    if expr.kind is NodeKind.CALL:
        callee = expr.child("callee")
        # Casts such as IERC20(token) produce a value of the named type.
        if callee is not None and callee.kind is NodeKind.IDENTIFIER and callee.attrs["name"] in index.contracts:
            return Node(NodeKind.USER_TYPE, callee.loc, callee.span, attrs={"name": callee.attrs["name"]})
        if callee is not None and callee.kind is NodeKind.IDENTIFIER and callee.attrs["name"][:1].isupper():
            name = callee.attrs["name"]
            if name not in index.structs and name not in index.enums:
                return Node(NodeKind.USER_TYPE, callee.loc, callee.span, attrs={"name": name})
        return None
    return None


# --- calls ---


def unwrap_callee(call: Node) -> Node | None:
    """The called expression, looking through ``{value: ...}`` options and legacy ``.value()``."""
    callee = call.child("callee")
    while callee is not None:
        if callee.kind is NodeKind.CALL_OPTIONS:
            callee = callee.child("expression")
        elif (
            callee.kind is NodeKind.CALL
            and (inner := callee.child("callee")) is not None
            and inner.kind is NodeKind.MEMBER_ACCESS
            and inner.attrs["member"] in ("value", "gas")
        ):
            callee = inner.child("expression")
        else:
            break
    return callee


def callee_name(call: Node) -> str | None:
    callee = unwrap_callee(call)
    if callee is None:
        return None
    if callee.kind is NodeKind.IDENTIFIER:
        return callee.attrs["name"]
    if callee.kind is NodeKind.MEMBER_ACCESS:
        return callee.attrs["member"]
    if callee.kind is NodeKind.TYPE_EXPRESSION:
        return callee.attrs["name"]
    return None


def call_arguments(call: Node) -> list[Node]:
    return call.children_with("argument")


def call_options(call: Node) -> dict[str, Node]:
    """Named ``{value: .., gas: ..}`` options, including legacy ``.value(x)`` calls."""
    options: dict[str, Node] = {}
    callee = call.child("callee")
    while callee is not None:
        if callee.kind is NodeKind.CALL_OPTIONS:
            for opt in callee.children_with("option"):
                value = opt.child("value")
                if value is not None:
                    options[opt.attrs["name"]] = value
            callee = callee.child("expression")
        elif callee.kind is NodeKind.CALL and (inner := callee.child("callee")) is not None:
            if inner.kind is NodeKind.MEMBER_ACCESS and inner.attrs["member"] in ("value", "gas"):
                args = call_arguments(callee)
                if args:
                    options[inner.attrs["member"]] = args[0]
                callee = inner.child("expression")
            else:
                break
        else:
            break
    return options


def _is_zero_literal(node: Node) -> bool:
    return (
        node.kind is NodeKind.LITERAL
        and node.attrs.get("literal_kind") == "number"
        and node.attrs["value"] in ("0", "0x0")
    )


def sends_value(call: Node) -> bool:
    """True when the call forwards ether (call options, send or transfer)."""
    value = call_options(call).get("value")
    if value is not None and not _is_zero_literal(value):
        return True
    callee = unwrap_callee(call)
    return (
        callee is not None
        and callee.kind is NodeKind.MEMBER_ACCESS
        and callee.attrs["member"] in VALUE_TRANSFERS
        and len(call_arguments(call)) == 1
    )


def external_call_kind(call: Node, scope: dict[str, Node], index: TypeIndex) -> str | None:
    """Classify a CALL node as ``low-level``, ``transfer``, ``high-level`` or None (internal)."""
    if call.kind is not NodeKind.CALL:
        return None
    callee = unwrap_callee(call)
    if callee is None or callee.kind is not NodeKind.MEMBER_ACCESS:
        return None
    member = callee.attrs["member"]
    base = callee.child("expression")
    if base is None:
        return None
    if base.kind is NodeKind.IDENTIFIER and base.attrs["name"] in GLOBAL_OBJECTS | {"this", "super"}:
        return None
    if member in LOW_LEVEL_CALLS:
        return "low-level"
    if member in VALUE_TRANSFERS and len(call_arguments(call)) == 1:
        base_type = expression_type(base, scope, index)
        if base_type is None or base_type.kind is NodeKind.ELEMENTARY_TYPE or _is_payable_cast(base):
            return "transfer"
    if base.kind is NodeKind.IDENTIFIER and (
        base.attrs["name"] in index.contracts or base.attrs["name"] not in scope
    ):
        # Static access on a type name (library call) or an unresolved name.
        return None
    base_type = expression_type(base, scope, index)
    if base_type is not None and base_type.kind is NodeKind.USER_TYPE and index.is_contract_type(base_type.attrs["name"]):
        return "high-level"
    return None


def _is_payable_cast(node: Node) -> bool:
    return node.kind is NodeKind.CALL and callee_name(node) in ("payable", "address")


def is_guard_call(node: Node) -> bool:
    """``require(...)`` / ``assert(...)``."""
    return node.kind is NodeKind.CALL and _plain_callee(node) in GUARD_FUNCTIONS


def is_revert_call(node: Node) -> bool:
    return node.kind is NodeKind.CALL and _plain_callee(node) == "revert"


def _plain_callee(call: Node) -> str | None:
    callee = call.child("callee")
    if callee is not None and callee.kind is NodeKind.IDENTIFIER:
        return callee.attrs["name"]
    return None


def statement_expression(stmt: Node) -> Node | None:
    if stmt.kind is NodeKind.EXPRESSION_STATEMENT:
        return stmt.child("expression")
    return None


def is_guard_statement(stmt: Node) -> bool:
    expr = statement_expression(stmt)
    return expr is not None and is_guard_call(expr)


def is_revert_statement(stmt: Node) -> bool:
    if stmt.kind in (NodeKind.REVERT, NodeKind.THROW):
        return True
    expr = statement_expression(stmt)
    return expr is not None and is_revert_call(expr)


# --- globals ---


def global_name(node: Node) -> str | None:
    """``tx.origin``-style name for an access to a global object, else None."""
    if node.kind is NodeKind.MEMBER_ACCESS:
        base = node.child("expression")
        if base is not None and base.kind is NodeKind.IDENTIFIER and base.attrs["name"] in GLOBAL_OBJECTS:
            return f"{base.attrs['name']}.{node.attrs['member']}"
    if node.kind is NodeKind.IDENTIFIER and node.attrs["name"] in GLOBAL_IDENTIFIERS:
        return node.attrs["name"]
    return None


def uses_global(node: Node, name: str) -> list[Node]:
    return [n for n in node.walk() if global_name(n) == name]


def comparisons_with_global(node: Node, name: str) -> list[Node]:
    """``==`` / ``!=`` comparisons where one operand is the given global."""
    found: list[Node] = []
    for n in node.find(NodeKind.BINARY):
        if n.attrs["operator"] not in ("==", "!="):
            continue
        if any(global_name(side) == name for side in n.children):
            found.append(n)
    return found


def checks_caller(function: Node) -> bool:
    """True when the body compares ``msg.sender`` or calls an owner/role check helper."""
    body = function_body(function)
    if body is None:
        return False
    if comparisons_with_global(body, "msg.sender"):
        return True
    for call in body.find(NodeKind.CALL):
        name = callee_name(call) or ""
        if _CALLER_CHECK_CALL_RE.match(name):
            return True
        if any(global_name(a) == "msg.sender" for a in call_arguments(call)) and _ACCESS_MODIFIER_RE.search(name):
            return True
    return False


# --- writes ---


def root_identifier(expr: Node) -> Node | None:
    """The variable an lvalue ultimately refers to: ``a`` in ``a[i].b``."""
    node: Node | None = expr
    while node is not None:
        if node.kind is NodeKind.IDENTIFIER:
            return node
        if node.kind in (NodeKind.INDEX_ACCESS, NodeKind.INDEX_RANGE):
            node = node.child("base")
        elif node.kind is NodeKind.MEMBER_ACCESS:
            inner = node.child("expression")
            if inner is not None and inner.kind is NodeKind.IDENTIFIER and inner.attrs["name"] == "this":
                return None
            node = inner
        else:
            return None
    return None


def _lvalues(node: Node) -> Iterator[Node]:
    if node.kind is NodeKind.TUPLE:
        for comp in node.children_with("component"):
            yield from _lvalues(comp)
    else:
        yield node


def written_lvalues(node: Node) -> list[Node]:
    """Expressions assigned, incremented or deleted anywhere in ``node``."""
    targets: list[Node] = []
    for n in node.walk():
        if n.kind is NodeKind.ASSIGNMENT:
            left = n.child("left")
            if left is not None:
                targets.extend(_lvalues(left))
        elif n.kind is NodeKind.UNARY and n.attrs["operator"] in ("++", "--", "delete"):
            operand = n.child("operand")
            if operand is not None:
                targets.append(operand)
    return targets


def state_writes(node: Node, state_names: set[str] | frozenset[str], shadowed: set[str] | frozenset[str] = frozenset()) -> list[tuple[str, Node]]:
    """(variable name, lvalue) for writes to state variables inside ``node``."""
    writes: list[tuple[str, Node]] = []
    for target in written_lvalues(node):
        root = root_identifier(target)
        if root is None:
            continue
        name = root.attrs["name"]
        if name in state_names and name not in shadowed:
            writes.append((name, target))
    return writes


def is_reentrancy_flag_write(node: Node, state_names: set[str] | frozenset[str] | None = None) -> bool:
    """An assignment toggling a lock-style variable (``locked = true``).

    With ``state_names`` the variable must also be one of them; without, any
    lock-named variable counts.
    """
    for n in node.find(NodeKind.ASSIGNMENT):
        left = n.child("left")
        root = root_identifier(left) if left is not None else None
        if root is None or not _REENTRANCY_FLAG_RE.search(root.attrs["name"]):
            continue
        if state_names is None or root.attrs["name"] in state_names:
            return True
    return False


def local_names(function: Node) -> set[str]:
    return set(local_types(function))


# --- pragma ---


def _parse_constraints(value: str) -> list[tuple[str, tuple[int, int, int]]]:
    constraints = []
    for m in _VERSION_RE.finditer(value):
        op = m.group(1) or "="
        version = (int(m.group(2)), int(m.group(3) or 0), int(m.group(4) or 0))
        constraints.append((op, version))
    return constraints


def pragma_lower_bound(value: str) -> tuple[int, int, int] | None:
    """Smallest compiler version a ``pragma solidity`` expression admits."""
    lower: tuple[int, int, int] | None = None
    constraints = _parse_constraints(value)
    for op, version in constraints:
        if op in ("<", "<="):
            continue
        if lower is None or version < lower:
            lower = version
    if lower is None and constraints:
        return (0, 0, 0)
    return lower


def solidity_lower_bound(unit: SourceUnit) -> tuple[int, int, int] | None:
    bounds = [
        b
        for p in unit.pragmas
        if p.attrs.get("name") == "solidity" and (b := pragma_lower_bound(p.attrs.get("value", ""))) is not None
    ]
    return max(bounds) if bounds else None


def allows_compiler_below(unit: SourceUnit, version: tuple[int, int, int]) -> bool:
    bound = solidity_lower_bound(unit)
    return bound is not None and bound < version


# --- traversal ---


def enclosing(ancestors: tuple[Node, ...], *kinds: NodeKind) -> Node | None:
    """Innermost ancestor of one of ``kinds``."""
    for node in reversed(ancestors):
        if node.kind in kinds:
            return node
    return None


def iter_functions(unit: SourceUnit) -> Iterator[tuple[Node | None, Node]]:
    """(contract or None, function) for every function with a body."""
    for top in unit.root.children:
        if top.kind is NodeKind.CONTRACT:
            for member in top.children:
                if member.kind in (NodeKind.FUNCTION, NodeKind.MODIFIER) and function_body(member) is not None:
                    yield top, member
        elif top.kind is NodeKind.FUNCTION and function_body(top) is not None:
            yield None, top
