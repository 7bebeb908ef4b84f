# SPDX-License-Identifier: MIT
"""Per-function control-flow graphs built from the AST in a single linear pass.

Blocks split at branches, loop headers and exits, returns, reverts, guard
statements (``require`` / ``assert``), external calls and reentrancy-lock
writes. An external call always ends its block and a lock write always sits
alone in one, so "state written after an external call" becomes a
reachability question between blocks rather than a textual one.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from superaudit.solidity import patterns
from superaudit.solidity.nodes import Node, NodeKind


class EdgeKind(StrEnum):
    NORMAL = "normal"
    TRUE = "true"
    FALSE = "false"
    EXCEPTION = "exception"
    LOOP_BACK = "loop-back"


@dataclass(frozen=True)
class Edge:
    source: int
    target: int
    kind: EdgeKind


@dataclass(eq=False)
class BasicBlock:
    """Straight-line run of statements (or branch conditions) with no internal branch."""

    id: int
    label: str
    statements: list[Node] = field(default_factory=list)
    external_calls: list[Node] = field(default_factory=list)
    terminator: str | None = None  # "return" | "revert" | "end"
    guard: bool = False
    dead: bool = False
    # Source statement that opened this block (branch arm, loop body, code after an exit).
    anchor: Node | None = None

    @property
    def first_statement(self) -> Node | None:
        return self.statements[0] if self.statements else None

    @property
    def location(self) -> Node | None:
        return self.anchor or self.first_statement


class ControlFlowGraph:
    """Blocks and labelled edges of one function body."""

    def __init__(self, function: Node) -> None:
        self.function = function
        self.blocks: dict[int, BasicBlock] = {}
        self.edges: list[Edge] = []
        self.entry: int = 0
        self.exits: list[int] = []
        self._succ: dict[int, list[Edge]] = {}
        self._pred: dict[int, list[Edge]] = {}
        self._node_block: dict[Node, int] = {}
        self._next_id = 0

    def add_block(self, label: str) -> BasicBlock:
        block = BasicBlock(id=self._next_id, label=label)
        self._next_id += 1
        self.blocks[block.id] = block
        self._succ[block.id] = []
        self._pred[block.id] = []
        return block

    def remove_block(self, block_id: int) -> None:
        """Drop an empty block that never received an edge."""
        if self._succ[block_id] or self._pred[block_id] or self.blocks[block_id].statements:
            raise ValueError(f"block {block_id} is still in use")
        del self.blocks[block_id]
        del self._succ[block_id]
        del self._pred[block_id]

    def add_edge(self, source: int, target: int, kind: EdgeKind = EdgeKind.NORMAL) -> None:
        edge = Edge(source, target, kind)
        if edge in self._succ[source]:
            return
        self.edges.append(edge)
        self._succ[source].append(edge)
        self._pred[target].append(edge)

    def record(self, block: BasicBlock, node: Node) -> None:
        block.statements.append(node)
        self._node_block[node] = block.id

    def out_edges(self, block_id: int) -> list[Edge]:
        return list(self._succ[block_id])

    def in_edges(self, block_id: int) -> list[Edge]:
        return list(self._pred[block_id])

    def successors(self, block_id: int) -> list[int]:
        return [e.target for e in self._succ[block_id]]

    def predecessors(self, block_id: int) -> list[int]:
        return [e.source for e in self._pred[block_id]]

    def block_of(self, node: Node) -> BasicBlock | None:
        """The block holding a recorded statement or branch condition."""
        block_id = self._node_block.get(node)
        return self.blocks.get(block_id) if block_id is not None else None

    def reachable_from(
        self,
        starts: Iterable[int],
        *,
        blocked: Callable[[BasicBlock], bool] | None = None,
    ) -> set[int]:
        """Blocks reachable from ``starts`` (inclusive).

        Traversal does not continue past blocks for which ``blocked`` returns True,
        although those blocks are themselves included.
        """
        seen: set[int] = set()
        queue = deque(starts)
        while queue:
            bid = queue.popleft()
            if bid in seen:
                continue
            seen.add(bid)
            if blocked is not None and blocked(self.blocks[bid]):
                continue
            queue.extend(self.successors(bid))
        return seen

    def dead_blocks(self) -> list[BasicBlock]:
        return [b for b in self.blocks.values() if b.dead]

    def blocks_containing(self, match: Callable[[Node], bool]) -> list[BasicBlock]:
        """Blocks with at least one recorded node whose subtree satisfies ``match``."""
        return [
            b for b in self.blocks.values() if any(match(n) for stmt in b.statements for n in stmt.walk())
        ]

    def in_cycle(self, block_id: int) -> bool:
        """True when the block can reach itself, i.e. it sits inside a loop."""
        return block_id in self.reachable_from(self.successors(block_id))

    def __repr__(self) -> str:
        return f"ControlFlowGraph({self.function.attrs.get('name')!r}, blocks={len(self.blocks)}, edges={len(self.edges)})"


def _literal_bool(node: Node | None) -> bool | None:
    if node is not None and node.kind is NodeKind.LITERAL and node.attrs.get("literal_kind") == "bool":
        return bool(node.attrs["value"])
    return None


class _Builder:
    def __init__(self, function: Node, is_external_call: Callable[[Node], bool]) -> None:
        self.graph = ControlFlowGraph(function)
        self.is_external_call = is_external_call
        self._loops: list[tuple[BasicBlock, BasicBlock]] = []  # (continue target, break target)
        self._revert_exit: BasicBlock | None = None

    def build(self) -> ControlFlowGraph:
        graph = self.graph
        entry = graph.add_block("entry")
        graph.entry = entry.id
        body = patterns.function_body(graph.function)
        end: BasicBlock | None = entry
        if body is not None:
            end = self.statements(body.children_with("statement"), entry)
        if end is not None:
            end.terminator = "end"
            graph.exits.append(end.id)
        live = graph.reachable_from([graph.entry])
        for block in graph.blocks.values():
            block.dead = block.id not in live
        return graph

    # --- helpers ---

    def revert_exit(self) -> BasicBlock:
        if self._revert_exit is None:
            self._revert_exit = self.graph.add_block("revert-exit")
            self._revert_exit.terminator = "revert"
            self.graph.exits.append(self._revert_exit.id)
        return self._revert_exit

    def record(self, block: BasicBlock, node: Node) -> None:
        self.graph.record(block, node)
        for call in node.find(NodeKind.CALL):
            if self.is_external_call(call):
                block.external_calls.append(call)

    def exit_with(self, block: BasicBlock, terminator: str) -> None:
        block.terminator = terminator
        self.graph.exits.append(block.id)

    def join(self, ends: list[BasicBlock | None], label: str = "join") -> BasicBlock | None:
        live = [e for e in ends if e is not None]
        if not live:
            return None
        block = self.graph.add_block(label)
        for e in live:
            self.graph.add_edge(e.id, block.id)
        return block

    def drop_if_unused(self, block: BasicBlock) -> BasicBlock | None:
        if not self.graph.predecessors(block.id):
            self.graph.remove_block(block.id)
            return None
        return block

    # --- statements ---

    def statements(self, stmts: list[Node], current: BasicBlock | None) -> BasicBlock | None:
        for stmt in stmts:
            if current is None:
                # Anything after an unconditional exit starts a predecessor-less region.
                current = self.graph.add_block("unreachable")
                current.anchor = stmt
            current = self.statement(stmt, current)
        return current

    def statement(self, stmt: Node, cur: BasicBlock) -> BasicBlock | None:
        kind = stmt.kind
        if kind in (NodeKind.BLOCK, NodeKind.UNCHECKED_BLOCK):
            return self.statements(stmt.children_with("statement"), cur)
        if kind is NodeKind.IF:
            return self.if_statement(stmt, cur)
        if kind is NodeKind.WHILE:
            return self.loop(stmt, cur, condition=stmt.child("condition"), update=None)
        if kind is NodeKind.FOR:
            init = stmt.child("init")
            if init is not None:
                cur = self.simple(init, cur)
            return self.loop(stmt, cur, condition=stmt.child("condition"), update=stmt.child("update"))
        if kind is NodeKind.DO_WHILE:
            return self.do_while(stmt, cur)
        if kind is NodeKind.TRY:
            return self.try_statement(stmt, cur)
        if kind is NodeKind.RETURN:
            self.record(cur, stmt)
            self.exit_with(cur, "return")
            return None
        if patterns.is_revert_statement(stmt):
            self.record(cur, stmt)
            self.exit_with(cur, "revert")
            return None
        if kind in (NodeKind.BREAK, NodeKind.CONTINUE) and self._loops:
            self.record(cur, stmt)
            continue_target, break_target = self._loops[-1]
            if kind is NodeKind.BREAK:
                self.graph.add_edge(cur.id, break_target.id, EdgeKind.NORMAL)
            else:
                self.graph.add_edge(cur.id, continue_target.id, EdgeKind.LOOP_BACK)
            return None
        return self.simple(stmt, cur)

    def split(self, cur: BasicBlock, label: str) -> BasicBlock:
        nxt = self.graph.add_block(label)
        self.graph.add_edge(cur.id, nxt.id)
        return nxt

    def simple(self, stmt: Node, cur: BasicBlock) -> BasicBlock:
        """Non-branching statement; unknown forms are treated as opaque."""
        # A lock toggle always sits alone in its block.
        lock_write = patterns.is_reentrancy_flag_write(stmt)
        if lock_write and cur.statements:
            cur = self.split(cur, "lock-write")
        calls_before = len(cur.external_calls)
        self.record(cur, stmt)
        if patterns.is_guard_statement(stmt):
            cur.guard = True
            self.graph.add_edge(cur.id, self.revert_exit().id, EdgeKind.EXCEPTION)
            return self.split(cur, "after-guard")
        if len(cur.external_calls) > calls_before:
            return self.split(cur, "after-call")
        if lock_write:
            return self.split(cur, "after-lock")
        return cur

    def if_statement(self, stmt: Node, cur: BasicBlock) -> BasicBlock | None:
        cond = stmt.child("condition")
        const = _literal_bool(cond)
        if cond is not None:
            self.record(cur, cond)
        then_stmt = stmt.child("then")
        then_block = self.graph.add_block("then")
        then_block.anchor = then_stmt
        if const is not False:
            self.graph.add_edge(cur.id, then_block.id, EdgeKind.TRUE)
        ends: list[BasicBlock | None] = [self.statement(then_stmt, then_block) if then_stmt else then_block]
        else_stmt = stmt.child("else")
        if else_stmt is not None:
            else_block = self.graph.add_block("else")
            else_block.anchor = else_stmt
            if const is not True:
                self.graph.add_edge(cur.id, else_block.id, EdgeKind.FALSE)
            ends.append(self.statement(else_stmt, else_block))
            return self.join(ends)
        joined = self.join(ends)
        if const is True:
            return joined
        if joined is None:
            joined = self.graph.add_block("join")
        self.graph.add_edge(cur.id, joined.id, EdgeKind.FALSE)
        return joined

    def loop(self, stmt: Node, cur: BasicBlock, *, condition: Node | None, update: Node | None) -> BasicBlock | None:
        # A missing condition (for (;;)) behaves like a literal true.
        const = True if condition is None else _literal_bool(condition)
        header = self.graph.add_block("loop-header")
        self.graph.add_edge(cur.id, header.id)
        if condition is not None:
            self.record(header, condition)
        body_block = self.graph.add_block("loop-body")
        body_block.anchor = stmt.child("body")
        if const is not False:
            self.graph.add_edge(header.id, body_block.id, EdgeKind.TRUE)
        exit_block = self.graph.add_block("loop-exit")
        if const is not True:
            self.graph.add_edge(header.id, exit_block.id, EdgeKind.FALSE)
        latch = self.graph.add_block("loop-latch") if update is not None else header
        self._loops.append((latch, exit_block))
        body = stmt.child("body")
        end = self.statement(body, body_block) if body is not None else body_block
        self._loops.pop()
        if update is not None:
            if end is not None:
                self.graph.add_edge(end.id, latch.id)
            if self.graph.predecessors(latch.id):
                self.record(latch, update)
                self.graph.add_edge(latch.id, header.id, EdgeKind.LOOP_BACK)
            else:
                self.graph.remove_block(latch.id)
        elif end is not None:
            self.graph.add_edge(end.id, header.id, EdgeKind.LOOP_BACK)
        return self.drop_if_unused(exit_block)

    def do_while(self, stmt: Node, cur: BasicBlock) -> BasicBlock | None:
        condition = stmt.child("condition")
        const = _literal_bool(condition)
        body_block = self.graph.add_block("loop-body")
        self.graph.add_edge(cur.id, body_block.id)
        cond_block = self.graph.add_block("loop-condition")
        exit_block = self.graph.add_block("loop-exit")
        self._loops.append((cond_block, exit_block))
        body = stmt.child("body")
        end = self.statement(body, body_block) if body is not None else body_block
        self._loops.pop()
        if end is not None:
            self.graph.add_edge(end.id, cond_block.id)
        if self.graph.predecessors(cond_block.id):
            if condition is not None:
                self.record(cond_block, condition)
            if const is not False:
                self.graph.add_edge(cond_block.id, body_block.id, EdgeKind.LOOP_BACK)
            if const is not True:
                self.graph.add_edge(cond_block.id, exit_block.id, EdgeKind.FALSE)
        else:
            self.graph.remove_block(cond_block.id)
        return self.drop_if_unused(exit_block)

    def try_statement(self, stmt: Node, cur: BasicBlock) -> BasicBlock | None:
        expr = stmt.child("expression")
        if expr is not None:
            self.record(cur, expr)
            if expr.kind is NodeKind.CALL and expr not in cur.external_calls:
                cur.external_calls.append(expr)
        body_block = self.graph.add_block("try-body")
        self.graph.add_edge(cur.id, body_block.id)
        body = stmt.child("body")
        ends: list[BasicBlock | None] = [self.statement(body, body_block) if body is not None else body_block]
        for clause in stmt.children_with("catch"):
            catch_block = self.graph.add_block("catch")
            self.graph.add_edge(cur.id, catch_block.id, EdgeKind.EXCEPTION)
            clause_body = clause.child("body")
            ends.append(self.statement(clause_body, catch_block) if clause_body is not None else catch_block)
        return self.join(ends)


def _low_level_only(call: Node) -> bool:
    return patterns.external_call_kind(call, {}, patterns.TypeIndex()) in ("low-level", "transfer")


def build_cfg(function: Node, *, is_external_call: Callable[[Node], bool] | None = None) -> ControlFlowGraph:
    """Build the control-flow graph of one function or modifier body.

    Args:
        function: A FUNCTION or MODIFIER node.
        is_external_call: Classifies CALL nodes; defaults to low-level calls and
            ether transfers, which need no type information.
    """
    return _Builder(function, is_external_call or _low_level_only).build()
