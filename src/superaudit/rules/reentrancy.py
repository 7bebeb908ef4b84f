# SPDX-License-Identifier: MIT
"""Rule 5: reentrancy, sensitive state written after an unguarded external call.

The check is a reachability question on the function's control-flow graph.
From the block that ends in an external call, search forward for blocks that
write balance-like state. A write is reported only when some path reaches it
without passing a reentrancy-lock toggle AND no path through such a toggle
reaches it as well. A call that every path from entry reaches through a lock
toggle runs with the lock held and is not considered at all.
"""

from __future__ import annotations

from collections.abc import Callable

from superaudit.rules.base import RuleKind, Severity
from superaudit.rules.context import AnalysisContext
from superaudit.solidity import patterns
from superaudit.solidity.cfg import BasicBlock, ControlFlowGraph
from superaudit.solidity.nodes import Node, NodeKind

# Calls that hand control (and enough gas) to foreign code.
FORWARDING_CALL_KINDS = frozenset({"low-level", "high-level"})

Write = tuple[str, Node]


def unguarded_writes_after(
    graph: ControlFlowGraph,
    block: BasicBlock,
    *,
    writes_in: Callable[[BasicBlock], list[Write]],
    is_guard: Callable[[BasicBlock], bool],
) -> list[Write]:
    """Writes reachable from the end of ``block`` on a lock-free path only."""
    starts = graph.successors(block.id)
    open_reach = graph.reachable_from(starts, blocked=is_guard)
    guards = [bid for bid in open_reach if is_guard(graph.blocks[bid])]
    guarded_reach = graph.reachable_from(guards) if guards else set()
    hits: list[Write] = []
    for bid in sorted(open_reach):
        candidate = graph.blocks[bid]
        if bid in guarded_reach or is_guard(candidate):
            continue
        hits.extend(writes_in(candidate))
    return hits


def lock_held(graph: ControlFlowGraph, block: BasicBlock, *, is_guard: Callable[[BasicBlock], bool]) -> bool:
    """True when every path from entry to ``block`` passes a lock toggle."""
    return block.id not in graph.reachable_from([graph.entry], blocked=is_guard)


def forwarding_calls(ctx: AnalysisContext, function: Node, block: BasicBlock) -> list[Node]:
    return [
        call
        for call in block.external_calls
        if ctx.external_call_kind(call, function) in FORWARDING_CALL_KINDS
        and patterns.callee_name(call) != "staticcall"
    ]


def reentrant_writes(
    ctx: AnalysisContext,
    contract: Node,
    function: Node,
    tracked: Callable[[str], bool] = patterns.is_sensitive_state_name,
) -> list[tuple[Node, list[Write]]]:
    """(external call, sensitive writes after it) for one function; empty when lock-guarded."""
    if any(patterns.is_reentrancy_guard_modifier(m) for m in patterns.modifier_names(function)):
        return []
    state = ctx.state_variable_names(contract)
    sensitive = {name for name in state if tracked(name)}
    if not sensitive:
        return []
    shadowed = patterns.local_names(function)
    graph = ctx.cfg(function)

    def writes_in(block: BasicBlock) -> list[Write]:
        return [w for stmt in block.statements for w in patterns.state_writes(stmt, sensitive, shadowed)]

    def is_guard(block: BasicBlock) -> bool:
        return any(patterns.is_reentrancy_flag_write(stmt, state) for stmt in block.statements)

    results: list[tuple[Node, list[Write]]] = []
    for block in graph.blocks.values():
        if block.dead:
            continue
        calls = forwarding_calls(ctx, function, block)
        if not calls:
            continue
        if lock_held(graph, block, is_guard=is_guard):
            continue
        writes = unguarded_writes_after(graph, block, writes_in=writes_in, is_guard=is_guard)
        if writes:
            results.append((calls[0], writes))
    return results


class ReentrancyRule:
    """Detect checks-effects-interactions violations on balance-like state."""

    id = "reentrancy"
    description = "Flag sensitive state writes reachable after an unguarded external call"
    severity = Severity.ERROR
    kind = RuleKind.CFG

    def apply(self, ctx: AnalysisContext) -> None:
        for contract, function in ctx.functions():
            if contract is None or function.kind is not NodeKind.FUNCTION:
                continue
            if not patterns.is_state_changing(function):
                continue
            for call, writes in reentrant_writes(ctx, contract, function):
                names: list[str] = []
                for name, _ in writes:
                    if name not in names:
                        names.append(name)
                listed = ", ".join(f"`{n}`" for n in names)
                ctx.report(
                    self,
                    call,
                    f"Reentrancy in `{function.attrs.get('name')}`: state {listed} is written after an "
                    "external call; update state before interacting (checks-effects-interactions)",
                )
