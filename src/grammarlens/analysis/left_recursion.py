"""
Left recursion detection.

Finds rules that can call themselves before consuming any input: directly
(``expr: expr '+' term``), indirectly through a chain of leftmost calls
(``a: b 'x'; b: a 'y' | 'z'``), and rules whose left recursion was already
rewritten into precedence-climbing form (recognizable by ``precpred``
guards).
"""

from __future__ import annotations

import logging
import re

from ..core.ir import (
    CompiledGrammar,
    IndirectLeftRecursion,
    LeftRecursionReport,
    LeftRecursiveRule,
    Rule,
    TransitionKind,
)
from .rule_graph import call_adjacency, find_cycles
from .traversal import in_rule_edges, nullable_rules, walk_rule

logger = logging.getLogger(__name__)

PRECPRED_PATTERN = re.compile(r"precpred\(\s*[^,()]+\s*,\s*(\d+)\s*\)")

LEGACY_INDIRECT_NOTE = (
    "Indirect left recursion was approximated from rule-graph cycles without verifying "
    "that each call is in leftmost position; some reported cycles may not be left-recursive."
)


class LeftRecursionDetector:
    """
    Left recursion analysis over one compiled grammar.

    Args:
        grammar: Grammar to analyze
        verify_leftmost: When True (default), a call only counts if nothing
            can be consumed before it: nullable callees are crossed and
            indirect cycles come from the leftmost-call graph. When False,
            direct detection stops at the first call on each path and
            indirect cycles are taken from the plain rule graph.
    """

    def __init__(self, grammar: CompiledGrammar, verify_leftmost: bool = True):
        self.grammar = grammar
        self.verify_leftmost = verify_leftmost
        self._nullable = nullable_rules(grammar) if verify_leftmost else frozenset()
        self._leftmost: dict[int, list[int]] = {}

    # -- leftmost calls -------------------------------------------------------

    def leftmost_calls(self, rule_index: int) -> list[int]:
        """
        Rules that ``rule_index`` can call before consuming a token.

        Callees are listed in discovery order without duplicates.
        """
        cached = self._leftmost.get(rule_index)
        if cached is not None:
            return cached

        automaton = self.grammar.automaton
        start = self.grammar.rule_at(rule_index).start_state
        callees: list[int] = []
        seen = {start}
        stack = [start]
        while stack:
            current = stack.pop()
            for transition, nxt in in_rule_edges(automaton, current):
                if transition.kind == TransitionKind.TERMINAL:
                    continue
                if transition.kind == TransitionKind.RULE_CALL:
                    if transition.rule is not None and transition.rule not in callees:
                        callees.append(transition.rule)
                    if transition.rule not in self._nullable:
                        continue
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)

        self._leftmost[rule_index] = callees
        return callees

    # -- per-rule checks ------------------------------------------------------

    def is_directly_left_recursive(self, rule: Rule) -> bool:
        return rule.index in self.leftmost_calls(rule.index)

    def _predicates(self, rule: Rule) -> list[str]:
        automaton = self.grammar.automaton
        return [
            t.predicate or ""
            for state_id in walk_rule(self.grammar, rule.index)
            for t in automaton.outgoing(state_id)
            if t.kind == TransitionKind.PREDICATE
        ]

    def is_transformed(self, rule: Rule) -> bool:
        return any(PRECPRED_PATTERN.search(p) for p in self._predicates(rule))

    def precedence_levels(self, rule: Rule) -> list[int]:
        """Precedence levels named by ``precpred`` guards, ascending and unique."""
        levels = {int(m.group(1)) for p in self._predicates(rule) for m in PRECPRED_PATTERN.finditer(p)}
        return sorted(levels)

    # -- indirect -------------------------------------------------------------

    def indirect_cycles(self) -> list[IndirectLeftRecursion]:
        """Cycles of two or more rules that recurse without consuming input."""
        names = self.grammar.rule_names
        parser_rules = [r.index for r in self.grammar.parser_rules()]
        parser_set = set(parser_rules)

        if self.verify_leftmost:
            adjacency = {i: [c for c in self.leftmost_calls(i) if c in parser_set] for i in parser_rules}
        else:
            full, _ = call_adjacency(self.grammar)
            adjacency = {i: [c for c in full[i] if c in parser_set] for i in parser_rules}

        return [
            IndirectLeftRecursion(rules=[names[i] for i in cycle], leftmost_verified=self.verify_leftmost)
            for cycle in find_cycles(adjacency, parser_rules)
            if len(cycle) > 1
        ]

    # -- report ---------------------------------------------------------------

    def analyze(self) -> LeftRecursionReport:
        report = LeftRecursionReport(leftmost_verified=self.verify_leftmost)
        parser_rules = self.grammar.parser_rules()

        for rule in parser_rules:
            direct = self.is_directly_left_recursive(rule)
            transformed = self.is_transformed(rule)
            if not direct and not transformed:
                continue
            report.left_recursive_rules.append(
                LeftRecursiveRule(
                    rule_name=rule.name,
                    is_direct=direct,
                    is_transformed=transformed,
                    precedence_levels=self.precedence_levels(rule) if transformed else [],
                    alternatives=rule.alternative_count,
                    line=rule.line,
                )
            )
            if transformed:
                report.transformed_rules.append(rule.name)

        report.indirect_cycles = self.indirect_cycles()
        if not self.verify_leftmost and report.indirect_cycles:
            report.notes.append(LEGACY_INDIRECT_NOTE)

        report.total_rules = len(parser_rules)
        report.left_recursive_count = len(report.left_recursive_rules)
        report.transformed_count = len(report.transformed_rules)
        report.indirect_count = len(report.indirect_cycles)

        logger.info(
            "Left recursion analysis for %s: %d left-recursive (%d transformed), %d indirect cycles",
            self.grammar.name,
            report.left_recursive_count,
            report.transformed_count,
            report.indirect_count,
        )
        return report


def analyze_left_recursion(grammar: CompiledGrammar, verify_leftmost: bool = True) -> LeftRecursionReport:
    return LeftRecursionDetector(grammar, verify_leftmost=verify_leftmost).analyze()
