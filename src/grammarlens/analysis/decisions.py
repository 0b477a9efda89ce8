"""
Decision reporting.

Lists every prediction point of a rule together with a small subgraph of
the automaton around it (nodes, labeled edges, DOT source) so a reader can
see which paths the parser has to choose between.
"""

from __future__ import annotations

import logging
from collections import deque

from ..core.ir import (
    CompiledGrammar,
    DecisionDetail,
    DecisionGraphEdge,
    DecisionGraphNode,
    DecisionPoint,
    DecisionVisualization,
    StateKind,
)
from .traversal import in_rule_edges

logger = logging.getLogger(__name__)

MAX_SUBGRAPH_STATES = 20


def _node_label(state_id: int, kind: StateKind, decision_ids: dict[int, int], rule_name: str) -> str:
    if state_id in decision_ids:
        return f"Decision {decision_ids[state_id]}"
    if kind == StateKind.RULE_START:
        return f"{rule_name} start"
    if kind == StateKind.RULE_STOP:
        return f"{rule_name} stop"
    return f"s{state_id}"


def decision_subgraph(grammar: CompiledGrammar, point: DecisionPoint) -> DecisionDetail:
    """Bounded breadth-first subgraph rooted at a decision state."""
    automaton = grammar.automaton
    rule = grammar.rule_at(point.rule_index)
    names = grammar.rule_names
    decision_ids = {dp.state_id: dp.decision_id for dp in grammar.decision_points()}

    order: list[int] = [point.state_id]
    admitted = {point.state_id}
    edges: list[DecisionGraphEdge] = []
    truncated = False
    queue = deque([point.state_id])
    while queue:
        current = queue.popleft()
        for transition, nxt in in_rule_edges(automaton, current):
            if nxt not in admitted:
                if len(admitted) >= MAX_SUBGRAPH_STATES:
                    truncated = True
                    continue
                admitted.add(nxt)
                order.append(nxt)
                queue.append(nxt)
            edges.append(DecisionGraphEdge(source=current, target=nxt, label=transition.label(names)))

    nodes = []
    for state_id in order:
        kind = automaton.state(state_id).kind
        nodes.append(
            DecisionGraphNode(
                id=state_id,
                label=_node_label(state_id, kind, decision_ids, rule.name),
                kind=kind.value,
                is_decision=state_id in decision_ids,
            )
        )

    detail = DecisionDetail(
        rule_name=rule.name,
        decision_number=point.decision_id,
        state_number=point.state_id,
        alternative_count=point.alternative_count,
        nodes=nodes,
        edges=edges,
        state_count=len(nodes),
        transition_count=len(edges),
        truncated=truncated,
    )
    detail.dot_format = decision_to_dot(detail)
    return detail


def _dot_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def decision_to_dot(detail: DecisionDetail) -> str:
    lines = [
        f"digraph Decision_{detail.decision_number} {{",
        "  rankdir=LR;",
        "  node [shape=box, style=rounded];",
        "",
    ]
    for node in detail.nodes:
        if node.id == detail.state_number:
            lines.append(
                f'  s{node.id} [label="Decision {detail.decision_number}", shape=diamond, style=filled, fillcolor=yellow];'
            )
        elif node.kind == StateKind.RULE_STOP.value:
            lines.append(f'  s{node.id} [label="{_dot_escape(node.label)}", shape=doublecircle];')
        else:
            lines.append(f'  s{node.id} [label="{_dot_escape(node.label)}"];')
    lines.append("")
    for edge in detail.edges:
        lines.append(f'  s{edge.source} -> s{edge.target} [label="{_dot_escape(edge.label)}"];')
    lines.append("}")
    return "\n".join(lines) + "\n"


def visualize_rule_decisions(grammar: CompiledGrammar, rule_name: str) -> DecisionVisualization:
    """
    Describe every decision of a rule.

    Raises:
        RuleNotFoundError: If the rule is not declared
    """
    rule_index = grammar.rule_index(rule_name)
    points = [dp for dp in grammar.decision_points() if dp.rule_index == rule_index]
    details = [decision_subgraph(grammar, dp) for dp in points]
    logger.info("Found %d decision points in rule '%s'", len(details), rule_name)
    return DecisionVisualization(rule_name=rule_name, total_decisions=len(details), decisions=details)
