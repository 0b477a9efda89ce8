"""
Decision complexity metrics.

Per rule: alternatives, decision points (with the widest decision), and the
coupling figures from the rule graph. Aggregated into grammar-wide totals
and a short list of the rules most worth simplifying.
"""

from __future__ import annotations

import logging

from ..core.ir import (
    CompiledGrammar,
    ComplexityMetrics,
    Rule,
    RuleComplexity,
    RuleGraph,
    RuleKind,
    StateKind,
)
from .rule_graph import build_graph
from .traversal import walk_rule

logger = logging.getLogger(__name__)

MOST_COMPLEX_LIMIT = 5


def complexity_score(alternatives: int, decision_points: int, fan_out: int, recursive: bool) -> int:
    """Weighted score; decisions and recursion cost more than plain alternatives."""
    return alternatives + 2 * decision_points + fan_out + (3 if recursive else 0)


class ComplexityAnalyzer:
    def __init__(self, grammar: CompiledGrammar, graph: RuleGraph | None = None):
        self.grammar = grammar
        self.graph = graph if graph is not None else build_graph(grammar)

    def decision_states(self, rule: Rule) -> list[int]:
        """Decision-kind states owned by the rule, in BFS order from its start."""
        automaton = self.grammar.automaton
        return [s for s in walk_rule(self.grammar, rule.index) if automaton.state(s).kind == StateKind.DECISION]

    def analyze_rule(self, rule: Rule) -> RuleComplexity:
        automaton = self.grammar.automaton
        decisions = self.decision_states(rule)
        widest = max((len(automaton.state(s).transitions) for s in decisions), default=0)
        alternatives = max(rule.alternative_count, 1)

        node = self.graph.node(rule.name)
        fan_in = len(node.called_by) if node else 0
        fan_out = len(node.calls) if node else 0
        depth = node.depth if node else 0
        recursive = node.recursive if node else False

        return RuleComplexity(
            rule_name=rule.name,
            type=rule.kind,
            alternatives=alternatives,
            decision_points=len(decisions),
            max_decision_alternatives=widest,
            depth=depth,
            fan_in=fan_in,
            fan_out=fan_out,
            recursive=recursive,
            score=complexity_score(alternatives, len(decisions), fan_out, recursive),
        )

    def analyze(self) -> ComplexityMetrics:
        metrics = ComplexityMetrics()
        for rule in self.grammar.rules:
            metrics.rule_metrics[rule.name] = self.analyze_rule(rule)

        values = list(metrics.rule_metrics.values())
        metrics.total_rules = len(values)
        metrics.parser_rules = sum(1 for rc in values if rc.type == RuleKind.PARSER)
        metrics.lexer_rules = sum(1 for rc in values if rc.type == RuleKind.LEXER)
        metrics.fragment_rules = sum(1 for rc in values if rc.type == RuleKind.FRAGMENT)
        if values:
            metrics.avg_alternatives_per_rule = round(sum(rc.alternatives for rc in values) / len(values), 2)
        metrics.total_decision_points = sum(rc.decision_points for rc in values)
        metrics.max_rule_depth = max((rc.depth for rc in values), default=0)

        ranked = sorted(values, key=lambda rc: (-rc.score, rc.rule_name))
        metrics.most_complex = [rc.rule_name for rc in ranked[:MOST_COMPLEX_LIMIT]]

        logger.info(
            "Complexity analysis for %s: %d rules (%d parser, %d lexer), %d decision points",
            self.grammar.name,
            metrics.total_rules,
            metrics.parser_rules,
            metrics.lexer_rules,
            metrics.total_decision_points,
        )
        return metrics


def analyze_complexity(grammar: CompiledGrammar) -> ComplexityMetrics:
    return ComplexityAnalyzer(grammar).analyze()
