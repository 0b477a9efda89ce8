"""
FIRST / FOLLOW sets and single-token decision lookahead.

FIRST(A) is the set of tokens that can begin a string derived from A.
FOLLOW(A) is the set of tokens that can appear right after A; it is the
context-free approximation, one set per rule, merged over all call sites.
A decision's lookahead has one set per alternative; two alternatives whose
sets share a token cannot be told apart with one token of lookahead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..core.ir import (
    AlternativeLookahead,
    CompiledGrammar,
    DecisionAnalysis,
    DecisionPoint,
    FirstFollowReport,
    LookaheadSet,
    Rule,
    RuleAnalysis,
    RuleKind,
    Transition,
    TransitionKind,
)
from ..core.errors import make_internal_error
from ..core.ir.lookahead import EOF_LABEL
from .traversal import in_rule_edges, nullable_rules, rule_calls, walk_rule

logger = logging.getLogger(__name__)


@dataclass
class _Scan:
    """Result of walking forward from a state until tokens are consumed."""

    tokens: set[str] = field(default_factory=set)
    reaches_stop: bool = False
    hits_predicate: bool = False

    def merge(self, other: _Scan) -> None:
        self.tokens |= other.tokens
        self.reaches_stop = self.reaches_stop or other.reaches_stop
        self.hits_predicate = self.hits_predicate or other.hits_predicate


class LookaheadAnalyzer:
    """
    Lookahead analysis over one compiled grammar.

    Args:
        grammar: Grammar to analyze
        entry_rules: Rules followed by end of input; defaults to the
            grammar's entry rules
        first_decision_only: Restrict the rule-level conflict check to the
            first decision of each rule instead of all of them
    """

    def __init__(
        self,
        grammar: CompiledGrammar,
        entry_rules: list[str] | None = None,
        first_decision_only: bool = False,
    ):
        self.grammar = grammar
        self.first_decision_only = first_decision_only
        entries = entry_rules if entry_rules else grammar.default_entry_rules()
        self.entry_indices = [grammar.rule_index(name) for name in entries]
        self._nullable = nullable_rules(grammar)
        self._first: dict[int, set[str]] = {r.index: set() for r in grammar.rules}
        self._follow: dict[int, set[str]] = {r.index: set() for r in grammar.rules}
        self._compute_first()
        self._compute_follow()
        self._decisions = {dp.decision_id: dp for dp in grammar.decision_points()}

    # -- scanning -------------------------------------------------------------

    def _scan(self, state_id: int) -> _Scan:
        """
        Tokens that can be consumed first when starting at ``state_id``.

        Stays inside the state's rule. Rule calls contribute the callee's
        current FIRST set and are crossed when the callee is nullable.
        """
        automaton = self.grammar.automaton
        stop = self.grammar.rule_at(automaton.state(state_id).rule).stop_state
        result = _Scan()
        seen = {state_id}
        stack = [state_id]
        while stack:
            current = stack.pop()
            if current == stop:
                result.reaches_stop = True
                continue
            for transition, nxt in in_rule_edges(automaton, current):
                if not self._step(transition, result):
                    continue
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return result

    def _step(self, transition: Transition, result: _Scan) -> bool:
        """Record what ``transition`` contributes; True if the walk continues past it."""
        if transition.kind == TransitionKind.TERMINAL:
            result.tokens.update(transition.tokens)
            return False
        if transition.kind == TransitionKind.RULE_CALL:
            callee = transition.rule
            if callee is None:
                return False
            result.tokens |= self._first.get(callee, set())
            return callee in self._nullable
        if transition.kind == TransitionKind.PREDICATE:
            result.hits_predicate = True
        return True

    def _compute_first(self) -> None:
        changed = True
        while changed:
            changed = False
            for rule in self.grammar.rules:
                tokens = self._scan(rule.start_state).tokens
                if not tokens <= self._first[rule.index]:
                    self._first[rule.index] |= tokens
                    changed = True

    def _compute_follow(self) -> None:
        for index in self.entry_indices:
            self._follow[index].add(EOF_LABEL)

        sites: list[tuple[int, int, int]] = []
        for rule in self.grammar.rules:
            for call in rule_calls(self.grammar, rule.index):
                if call.rule is not None and call.follow is not None:
                    sites.append((rule.index, call.rule, call.follow))

        continuations = {follow: self._scan(follow) for _, _, follow in sites}
        changed = True
        while changed:
            changed = False
            for caller, callee, follow in sites:
                scan = continuations[follow]
                additions = set(scan.tokens)
                if scan.reaches_stop:
                    additions |= self._follow[caller]
                if not additions <= self._follow[callee]:
                    self._follow[callee] |= additions
                    changed = True

    # -- public queries -------------------------------------------------------

    def nullable(self, rule_name: str) -> bool:
        return self.grammar.rule_index(rule_name) in self._nullable

    def first(self, rule_name: str) -> LookaheadSet:
        index = self.grammar.rule_index(rule_name)
        return LookaheadSet.of(self._first[index], epsilon=index in self._nullable)

    def follow(self, rule_name: str) -> LookaheadSet:
        return LookaheadSet.of(self._follow[self.grammar.rule_index(rule_name)])

    def decision(self, decision_id: int) -> DecisionPoint:
        if decision_id not in self._decisions:
            raise make_internal_error(f"Unknown decision {decision_id}")
        return self._decisions[decision_id]

    def decision_lookaheads(self, decision_id: int) -> list[LookaheadSet]:
        """
        One lookahead set per alternative of a decision.

        An alternative that meets a predicate before consuming a token is
        dynamic. Reaching the end of the rule adds FOLLOW of the rule.
        """
        point = self.decision(decision_id)
        automaton = self.grammar.automaton
        follow = self._follow[point.rule_index]
        sets: list[LookaheadSet] = []
        for transition in automaton.outgoing(point.state_id):
            scan = _Scan()
            if self._step(transition, scan):
                nxt = transition.follow if transition.kind == TransitionKind.RULE_CALL else transition.target
                if nxt is not None and automaton.state(nxt).rule == point.rule_index:
                    scan.merge(self._scan(nxt))
            if scan.hits_predicate:
                sets.append(LookaheadSet.make_dynamic())
                continue
            tokens = scan.tokens | follow if scan.reaches_stop else scan.tokens
            sets.append(LookaheadSet.of(tokens))
        return sets

    def conflicting_tokens(self, decision_id: int) -> LookaheadSet:
        """Tokens predicting more than one alternative of the decision."""
        sets = self.decision_lookaheads(decision_id)
        shared = LookaheadSet()
        for i, a in enumerate(sets):
            for b in sets[i + 1 :]:
                shared = shared.union(a.intersection(b))
        return shared

    def has_conflict(self, decision_id: int) -> bool:
        return len(self.conflicting_tokens(decision_id)) > 0

    def rule_decisions(self, rule: Rule) -> list[DecisionPoint]:
        """Decisions of a rule, ordered by distance from the rule's start state."""
        by_state = {dp.state_id: dp for dp in self._decisions.values() if dp.rule_index == rule.index}
        return [by_state[s] for s in walk_rule(self.grammar, rule.index) if s in by_state]

    def rule_conflicts(self, rule_name: str) -> list[int]:
        """Ids of the rule's decisions with a lookahead conflict."""
        decisions = self.rule_decisions(self.grammar.rule(rule_name))
        if self.first_decision_only:
            decisions = decisions[:1]
        return [dp.decision_id for dp in decisions if self.has_conflict(dp.decision_id)]

    # -- report ---------------------------------------------------------------

    def analyze_decision(self, point: DecisionPoint) -> DecisionAnalysis:
        sets = self.decision_lookaheads(point.decision_id)
        shared = self.conflicting_tokens(point.decision_id)
        return DecisionAnalysis(
            decision_number=point.decision_id,
            rule_name=self.grammar.rule_at(point.rule_index).name,
            state_number=point.state_id,
            alternative_count=len(sets),
            alternatives=[
                AlternativeLookahead(alternative=i + 1, lookahead_tokens=s.display(), has_predicate=s.dynamic)
                for i, s in enumerate(sets)
            ],
            has_ambiguous_lookahead=len(shared) > 0,
            conflicting_tokens=shared.display(),
        )

    def analyze_rule(self, rule: Rule) -> RuleAnalysis:
        conflicts = self.rule_conflicts(rule.name)
        return RuleAnalysis(
            rule_name=rule.name,
            first_set=self.first(rule.name).display(),
            follow_set=self.follow(rule.name).display(),
            nullable=rule.index in self._nullable,
            has_ll1_conflict=bool(conflicts),
            conflicting_decisions=conflicts,
            alternative_count=rule.alternative_count,
        )

    def analyze(self, rule_name: str | None = None) -> FirstFollowReport:
        """
        Build the FIRST/FOLLOW report for one rule or for every parser rule.

        Raises:
            RuleNotFoundError: If ``rule_name`` is not declared
        """
        if rule_name is not None:
            rules = [self.grammar.rule(rule_name)]
        else:
            rules = self.grammar.parser_rules()
        selected = {r.index for r in rules}

        report = FirstFollowReport(first_decision_only=self.first_decision_only)
        report.rules = [self.analyze_rule(r) for r in rules]
        report.decisions = [
            self.analyze_decision(dp)
            for dp in self.grammar.decision_points()
            if dp.rule_index in selected
            and (rule_name is not None or self.grammar.rule_at(dp.rule_index).kind == RuleKind.PARSER)
        ]

        report.total_parser_rules = len(report.rules)
        report.nullable_rule_count = sum(1 for r in report.rules if r.nullable)
        report.rules_with_conflicts = sum(1 for r in report.rules if r.has_ll1_conflict)
        report.total_decisions = len(report.decisions)
        report.ambiguous_decisions = sum(1 for d in report.decisions if d.has_ambiguous_lookahead)

        logger.info(
            "FIRST/FOLLOW for %s: %d rules, %d decisions, %d ambiguous",
            self.grammar.name,
            report.total_parser_rules,
            report.total_decisions,
            report.ambiguous_decisions,
        )
        return report


def analyze_first_follow(
    grammar: CompiledGrammar,
    rule_name: str | None = None,
    entry_rules: list[str] | None = None,
    first_decision_only: bool = False,
) -> FirstFollowReport:
    analyzer = LookaheadAnalyzer(grammar, entry_rules=entry_rules, first_decision_only=first_decision_only)
    return analyzer.analyze(rule_name)
