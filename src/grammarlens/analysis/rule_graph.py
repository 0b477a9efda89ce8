"""
Rule dependency graph.

Builds the caller -> callee graph of a compiled grammar and derives cycles,
unused and unreachable rules, fan-in/fan-out and depth. Also renders the
graph as DOT or Mermaid source.
"""

from __future__ import annotations

import logging
import re
from collections import deque

from ..core.ir import CompiledGrammar, RuleCycle, RuleGraph, RuleGraphEdge, RuleKind, RuleNode
from .traversal import rule_calls

logger = logging.getLogger(__name__)

Adjacency = dict[int, list[int]]


# =============================================================================
# Graph algorithms
# =============================================================================


def call_adjacency(grammar: CompiledGrammar) -> tuple[Adjacency, dict[tuple[int, int], int]]:
    """
    Distinct callees per rule (discovery order) and call-site counts per edge.
    """
    adjacency: Adjacency = {}
    call_sites: dict[tuple[int, int], int] = {}
    for rule in grammar.rules:
        callees: list[int] = []
        for call in rule_calls(grammar, rule.index):
            callee = call.rule
            if callee is None:
                continue
            grammar.rule_at(callee)  # raises on a dangling rule index
            key = (rule.index, callee)
            if key not in call_sites:
                callees.append(callee)
                call_sites[key] = 0
            call_sites[key] += 1
        adjacency[rule.index] = callees
    return adjacency, call_sites


def find_cycles(adjacency: Adjacency, order: list[int] | None = None) -> list[list[int]]:
    """
    Find cycles by depth-first search with an explicit stack.

    A back edge to a node on the current path closes a cycle. Cycles with
    the same set of members are reported once, in the order first found.
    """
    nodes = order if order is not None else sorted(adjacency)
    visited: set[int] = set()
    seen_sets: set[frozenset[int]] = set()
    cycles: list[list[int]] = []

    for root in nodes:
        if root in visited:
            continue
        path: list[int] = [root]
        on_path = {root}
        stack: list[tuple[int, int]] = [(root, 0)]
        visited.add(root)
        while stack:
            node, i = stack[-1]
            succs = adjacency.get(node, [])
            if i >= len(succs):
                stack.pop()
                path.pop()
                on_path.discard(node)
                continue
            stack[-1] = (node, i + 1)
            nxt = succs[i]
            if nxt in on_path:
                members = path[path.index(nxt) :]
                key = frozenset(members)
                if key not in seen_sets:
                    seen_sets.add(key)
                    cycles.append(list(members))
            elif nxt not in visited:
                visited.add(nxt)
                path.append(nxt)
                on_path.add(nxt)
                stack.append((nxt, 0))
    return cycles


def strongly_connected_components(adjacency: Adjacency, order: list[int] | None = None) -> list[list[int]]:
    """Tarjan's algorithm, iterative. Components are returned in reverse topological order."""
    nodes = order if order is not None else sorted(adjacency)
    index_of: dict[int, int] = {}
    lowlink: dict[int, int] = {}
    on_stack: set[int] = set()
    scc_stack: list[int] = []
    components: list[list[int]] = []
    counter = 0

    for root in nodes:
        if root in index_of:
            continue
        work: list[tuple[int, int]] = [(root, 0)]
        while work:
            node, i = work[-1]
            if i == 0 and node not in index_of:
                index_of[node] = lowlink[node] = counter
                counter += 1
                scc_stack.append(node)
                on_stack.add(node)
            succs = adjacency.get(node, [])
            if i < len(succs):
                work[-1] = (node, i + 1)
                nxt = succs[i]
                if nxt not in index_of:
                    work.append((nxt, 0))
                elif nxt in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[nxt])
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == index_of[node]:
                component: list[int] = []
                while True:
                    member = scc_stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(sorted(component))
    return components


def condensed_depths(adjacency: Adjacency, order: list[int] | None = None) -> dict[int, int]:
    """
    Longest path from a zero-in-degree component, per node.

    Rules in the same strongly connected component share one depth, so
    cycles contribute a single level.
    """
    components = strongly_connected_components(adjacency, order)
    component_of = {node: ci for ci, comp in enumerate(components) for node in comp}

    successors: dict[int, set[int]] = {ci: set() for ci in range(len(components))}
    in_degree = dict.fromkeys(range(len(components)), 0)
    for node, callees in adjacency.items():
        for callee in callees:
            a, b = component_of[node], component_of[callee]
            if a != b and b not in successors[a]:
                successors[a].add(b)
                in_degree[b] += 1

    depth = dict.fromkeys(range(len(components)), 0)
    queue = deque(ci for ci in range(len(components)) if in_degree[ci] == 0)
    while queue:
        ci = queue.popleft()
        for nxt in sorted(successors[ci]):
            depth[nxt] = max(depth[nxt], depth[ci] + 1)
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                queue.append(nxt)

    return {node: depth[component_of[node]] for node in component_of}


def _reachable_from(adjacency: Adjacency, roots: list[int]) -> set[int]:
    seen = set(roots)
    queue = deque(roots)
    while queue:
        node = queue.popleft()
        for nxt in adjacency.get(node, []):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


# =============================================================================
# Graph construction
# =============================================================================


def build_graph(grammar: CompiledGrammar, entry_rules: list[str] | None = None) -> RuleGraph:
    """
    Build the rule dependency graph.

    Args:
        grammar: Compiled grammar to analyze
        entry_rules: Parse entry points; defaults to the grammar's declared
            entry rules, or its first parser rule

    Raises:
        RuleNotFoundError: If an entry rule is not declared
    """
    names = grammar.rule_names
    entries = entry_rules if entry_rules else grammar.default_entry_rules()
    entry_indices = [grammar.rule_index(name) for name in entries]

    adjacency, call_sites = call_adjacency(grammar)
    order = [r.index for r in grammar.rules]

    callers: dict[int, list[int]] = {i: [] for i in order}
    for caller in order:
        for callee in adjacency[caller]:
            callers[callee].append(caller)

    # Lexer rules are driven by the tokenizer, not by parser rules
    implicit_roots = [r.index for r in grammar.rules if r.kind == RuleKind.LEXER]
    roots = entry_indices + [i for i in implicit_roots if i not in entry_indices]
    reachable = _reachable_from(adjacency, roots)

    cycles = find_cycles(adjacency, order)
    components = strongly_connected_components(adjacency, order)
    recursive = {
        node
        for comp in components
        for node in comp
        if len(comp) > 1 or node in adjacency.get(node, [])
    }
    depths = condensed_depths(adjacency, order)

    nodes: list[RuleNode] = []
    unused: list[str] = []
    for rule in grammar.rules:
        i = rule.index
        external_callers = [c for c in callers[i] if c != i]
        is_unused = not external_callers and i not in roots
        if is_unused:
            unused.append(rule.name)
        nodes.append(
            RuleNode(
                rule_name=rule.name,
                type=rule.kind,
                calls=[names[c] for c in adjacency[i]],
                called_by=[names[c] for c in callers[i]],
                depth=depths.get(i, 0),
                recursive=i in recursive,
                unused=is_unused,
                reachable=i in reachable,
            )
        )

    edges = [
        RuleGraphEdge(caller=names[caller], callee=names[callee], call_sites=call_sites[(caller, callee)])
        for caller in order
        for callee in adjacency[caller]
    ]

    graph = RuleGraph(
        grammar_name=grammar.name,
        entry_rules=list(entries),
        nodes=nodes,
        edges=edges,
        cycles=[RuleCycle(rules=[names[i] for i in cycle]) for cycle in cycles],
        unused_rules=unused,
        unreachable_rules=[r.name for r in grammar.rules if r.index not in reachable],
        recursive_rules=[r.name for r in grammar.rules if r.index in recursive],
        fan_in={r.name: len(callers[r.index]) for r in grammar.rules},
        fan_out={r.name: len(adjacency[r.index]) for r in grammar.rules},
        depths={r.name: depths.get(r.index, 0) for r in grammar.rules},
        total_rules=len(grammar.rules),
    )
    logger.info(
        "Rule graph for %s: %d rules, %d edges, %d cycles, %d unused",
        grammar.name,
        len(nodes),
        len(edges),
        len(cycles),
        len(unused),
    )
    return graph


# =============================================================================
# Renderings
# =============================================================================

_DOT_SHAPES = {RuleKind.PARSER: "box", RuleKind.LEXER: "ellipse", RuleKind.FRAGMENT: "diamond"}
_DOT_COLORS = {RuleKind.PARSER: "lightblue", RuleKind.LEXER: "lightgreen", RuleKind.FRAGMENT: "lightyellow"}


def _dot_color(node: RuleNode) -> str:
    if node.unused:
        return "lightgray"
    if node.recursive:
        return "lightyellow"
    return _DOT_COLORS.get(node.type, "white")


def to_dot(graph: RuleGraph) -> str:
    """Render the graph as Graphviz DOT source."""
    lines = [
        "digraph CallGraph {",
        "  rankdir=LR;",
        '  node [shape=box, style=rounded, fontname="Arial"];',
        "",
    ]
    for node in graph.nodes:
        style = "dashed,filled" if node.unused else "filled"
        lines.append(
            f'  "{node.rule_name}" [fillcolor="{_dot_color(node)}", '
            f'shape={_DOT_SHAPES.get(node.type, "box")}, style="{style}"];'
        )
    lines.append("")
    for edge in graph.edges:
        lines.append(f'  "{edge.caller}" -> "{edge.callee}";')
    lines.append("}")
    return "\n".join(lines) + "\n"


def _mermaid_node(node: RuleNode, index: int) -> str:
    prefix = ""
    if node.recursive:
        prefix += "⟳ "
    if node.unused:
        prefix += "✗ "
    # the position keeps ids unique when two names sanitize alike
    ident = f"r{index}_" + re.sub(r"[^a-zA-Z0-9]", "_", node.rule_name)
    return f'{ident}["{prefix}{node.rule_name}"]'


def to_mermaid(graph: RuleGraph) -> str:
    """Render the graph as a Mermaid flowchart; rules without edges appear as lone nodes."""
    labels = {n.rule_name: _mermaid_node(n, i) for i, n in enumerate(graph.nodes)}
    lines = ["graph LR"]
    connected: set[str] = set()
    for edge in graph.edges:
        if edge.caller in labels and edge.callee in labels:
            lines.append(f"  {labels[edge.caller]} --> {labels[edge.callee]}")
            connected.update((edge.caller, edge.callee))
    for node in graph.nodes:
        if node.rule_name not in connected:
            lines.append(f"  {labels[node.rule_name]}")
    return "\n".join(lines) + "\n"
