"""
Reference parse engine: interprets the grammar automaton directly.

``InterpreterEngine`` implements ``ParseEngine`` without generated code. It
tokenizes with ``Lexer`` and recognizes with ``EarleyChart``, then reads
the instrumentation off the chart:

- A decision item on a derivation of the input is one prediction. Each
  alternative whose successor also lies on a derivation was viable. A
  decision item is reported as an ambiguity when two viable alternatives
  complete the input under the same calling context (see ``_TieLocator``).
- Lookahead depth is one when the static lookahead sets single out one
  alternative for the current token. Otherwise the prediction needed the
  rest of the rule invocation to resolve and is counted as a fallback.

For rejected input the same analysis runs on the longest viable prefix and
ambiguities are marked as not proven with full context.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field

from ..analysis.lookahead import LookaheadAnalyzer
from ..core.ir import (
    AmbiguityEvent,
    CompiledGrammar,
    DecisionPoint,
    LookaheadSet,
    StateKind,
    Transition,
    TransitionKind,
)
from ..core.ir.lookahead import EOF_LABEL
from .chart import AMBIGUOUS, ChartIndex, EarleyChart, Invocation, Triple
from .lexer import Lexer
from .protocols import DecisionStatistics, ParseExecution, ParseOutcome
from .tokens import TokenStream

logger = logging.getLogger(__name__)

DEFAULT_MAX_PREPARED = 16

# End marker for an invocation still open where a rejected input stops
OPEN = -1

Context = set[tuple[int, int]]  # (rule, end) pairs acceptable to one caller


@dataclass
class _Prepared:
    """Per-grammar tables, built once and shared by every sample."""

    grammar: CompiledGrammar
    lexer: Lexer
    index: ChartIndex
    decisions: dict[int, DecisionPoint]  # state id -> decision
    outer_decision: dict[int, int]  # rule index -> state id of its block decision
    decision_rules: dict[int, int]  # decision id -> rule index
    lookaheads: dict[tuple[int, int], list[LookaheadSet]] = field(default_factory=dict)
    analyzers: dict[int, LookaheadAnalyzer] = field(default_factory=dict)


class _TieLocator:
    """
    Decides which decision items with several viable alternatives are ambiguous.

    Viability is read off shared chart items, and nested invocations of a
    left-recursive rule share those items, so two viable alternatives may
    belong to two nesting levels of one derivation. An item is a tie only
    when two of its alternatives complete the input under one calling
    context. A context is a call site outside the item's left-recursive
    group, or the accepting item for the start rule; the ends a context
    accepts are the group's ``(rule, end)`` pairs it can resume from. A
    context is ambiguous when it accepts two ends or one end with two
    derivations local to the group.
    """

    def __init__(self, chart: EarleyChart, useful: set[Triple]):
        self.chart = chart
        self.useful = useful
        self.automaton = chart.automaton
        self.groups = chart.left_recursive_groups(useful)
        self.counts = chart.derivation_counts(useful, self.groups)
        self.open_at = None if chart.accepted else chart.furthest
        self.ends: dict[Invocation, list[int]] = {}
        self.callers: dict[Invocation, list[tuple[Triple, int]]] = {}  # callee -> (call item, follow)
        self.open_count: dict[Invocation, int] = {}
        self._contexts: dict[object, list[Context]] = {}

        for triple in useful:
            state_id, origin, k = triple
            state = self.automaton.state(state_id)
            invocation = (state.rule, origin)
            if k == self.open_at:
                self.open_count[invocation] = max(self.open_count.get(invocation, 0), self.counts[triple])
            if state.kind == StateKind.RULE_STOP:
                self.ends.setdefault(invocation, []).append(k)
                continue
            for transition in self.automaton.outgoing(state_id):
                if transition.kind == TransitionKind.RULE_CALL and transition.rule is not None:
                    if transition.follow is not None:
                        self.callers.setdefault((transition.rule, k), []).append((triple, transition.follow))

    def _key(self, invocation: Invocation) -> object:
        group = self.groups.get(invocation)
        return ("group", group) if group is not None else invocation

    def _members(self, invocation: Invocation) -> list[Invocation]:
        group = self.groups.get(invocation)
        if group is None:
            return [invocation]
        return sorted(member for member, g in self.groups.items() if g == group)

    def _internal_call(self, item: Triple, callee: Invocation) -> bool:
        caller = (self.automaton.state(item[0]).rule, item[1])
        return callee in self.groups and self.groups.get(caller) == self.groups[callee]

    def contexts(self, invocation: Invocation) -> list[Context]:
        key = self._key(invocation)
        cached = self._contexts.get(key)
        if cached is not None:
            return cached

        members = self._members(invocation)
        contexts: list[Context] = []
        for member in members:
            rule, origin = member
            for item, follow in self.callers.get(member, ()):
                if self._internal_call(item, member):
                    continue
                accepted = {(rule, m) for m in self.ends.get(member, ()) if (follow, item[1], m) in self.useful}
                if accepted:
                    contexts.append(accepted)
        if self.chart.accept_position is not None and (self.chart.start_rule, 0) in members:
            contexts.append({(self.chart.start_rule, self.chart.accept_position)})
        if self.open_at is not None:
            still_open = {(rule, OPEN) for rule, origin in members if (rule, origin) in self.open_count}
            if still_open:
                contexts.append(still_open)
        self._contexts[key] = contexts
        return contexts

    def _span_count(self, rule: int, origin: int, end: int) -> int:
        if end == OPEN:
            return self.open_count.get((rule, origin), 0)
        return self.counts.get((self.chart.index.stop_of_rule[rule], origin, end), 0)

    def _successors(self, transition: Transition, origin: int, k: int) -> list[Triple]:
        if transition.kind == TransitionKind.TERMINAL:
            nxt = (transition.target, origin, k + 1)
            matched = k < len(self.chart.types) and self.chart.types[k] in transition.tokens
            return [nxt] if matched and nxt in self.useful else []
        if transition.kind == TransitionKind.RULE_CALL:
            if transition.rule is None or transition.follow is None:
                return []
            follow = transition.follow
            return [
                (follow, origin, m)
                for m in self.ends.get((transition.rule, k), ())
                if (follow, origin, m) in self.useful
            ]
        nxt = (transition.target, origin, k)
        return [nxt] if nxt in self.useful else []

    def _reach(self, starts: list[Triple], origin: int) -> set[tuple[int, int]]:
        """``(rule, end)`` pairs of the group reachable from ``starts`` without leaving it."""
        reached: set[tuple[int, int]] = set()
        seen = set(starts)
        work = list(starts)
        while work:
            state_id, _, k = work.pop()
            state = self.automaton.state(state_id)
            if k == self.open_at:
                reached.add((state.rule, OPEN))
            nxt_items: list[Triple] = []
            if state.kind == StateKind.RULE_STOP:
                reached.add((state.rule, k))
                invocation = (state.rule, origin)
                for item, follow in self.callers.get(invocation, ()):
                    if item[1] == origin and self._internal_call(item, invocation):
                        if (follow, origin, k) in self.useful:
                            nxt_items.append((follow, origin, k))
            else:
                for transition in self.automaton.outgoing(state_id):
                    nxt_items.extend(self._successors(transition, origin, k))
            for nxt in nxt_items:
                if nxt not in seen:
                    seen.add(nxt)
                    work.append(nxt)
        return reached

    def tied_alternatives(self, triple: Triple, viable: list[int]) -> set[int]:
        """Viable alternatives of a decision item that tie under some context."""
        state_id, origin, k = triple
        rule = self.automaton.state(state_id).rule
        outgoing = self.automaton.outgoing(state_id)
        reaches = {alt: self._reach(self._successors(outgoing[alt - 1], origin, k), origin) for alt in viable}

        tied: set[int] = set()
        for context in self.contexts((rule, origin)):
            if len(context) < 2 and all(self._span_count(r, origin, m) < AMBIGUOUS for r, m in context):
                continue
            hits = {alt for alt, reached in reaches.items() if reached & context}
            if len(hits) >= 2:
                tied |= hits
        return tied


class InterpreterEngine:
    """
    Thread-safe ``ParseEngine`` backed by a chart parser.

    Per-grammar tables are kept for the ``max_prepared`` most recently used
    grammars.
    """

    def __init__(self, max_prepared: int = DEFAULT_MAX_PREPARED) -> None:
        if max_prepared < 1:
            raise ValueError(f"max_prepared must be at least 1, got {max_prepared}")
        self.max_prepared = max_prepared
        self._prepared: OrderedDict[int, _Prepared] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._prepared)

    # -- preparation ----------------------------------------------------------

    def _prepare(self, grammar: CompiledGrammar) -> _Prepared:
        with self._lock:
            prepared = self._prepared.get(id(grammar))
            # the stored grammar reference keeps id() from being reused
            if prepared is not None and prepared.grammar is grammar:
                self._prepared.move_to_end(id(grammar))
                return prepared
            decisions = {dp.state_id: dp for dp in grammar.decision_points()}
            outer: dict[int, int] = {}
            for rule in grammar.rules:
                if rule.alternative_count < 2:
                    continue
                first = min(
                    (dp.state_id for dp in decisions.values() if dp.rule_index == rule.index),
                    default=None,
                )
                if first is not None:
                    outer[rule.index] = first

            prepared = _Prepared(
                grammar=grammar,
                lexer=Lexer(grammar),
                index=ChartIndex(grammar),
                decisions=decisions,
                outer_decision=outer,
                decision_rules={dp.decision_id: dp.rule_index for dp in decisions.values()},
            )
            self._prepared[id(grammar)] = prepared
            while len(self._prepared) > self.max_prepared:
                _, evicted = self._prepared.popitem(last=False)
                logger.debug("Dropped interpreter tables for grammar %s", evicted.grammar.name)
            logger.debug("Prepared interpreter tables for grammar %s", grammar.name)
            return prepared

    def _lookaheads(self, prepared: _Prepared, start_rule: int, point: DecisionPoint) -> list[LookaheadSet]:
        key = (start_rule, point.decision_id)
        with self._lock:
            cached = prepared.lookaheads.get(key)
            if cached is not None:
                return cached
            analyzer = prepared.analyzers.get(start_rule)
            if analyzer is None:
                start_name = prepared.grammar.rule_at(start_rule).name
                analyzer = LookaheadAnalyzer(prepared.grammar, entry_rules=[start_name])
                prepared.analyzers[start_rule] = analyzer
            sets = analyzer.decision_lookaheads(point.decision_id)
            prepared.lookaheads[key] = sets
            return sets

    # -- ParseEngine ----------------------------------------------------------

    def tokenize(self, grammar: CompiledGrammar, text: str) -> TokenStream:
        return self._prepare(grammar).lexer.tokenize(text)

    def instrumented_parse(
        self,
        grammar: CompiledGrammar,
        rule_index: int,
        tokens: TokenStream,
        cancel: threading.Event,
    ) -> ParseExecution:
        prepared = self._prepare(grammar)
        grammar.rule_at(rule_index)  # raises on a bad start rule
        types = tokens.types
        chart = EarleyChart(prepared.index, types, rule_index, cancel)
        accepted = chart.recognize()
        useful = chart.useful_items()
        ties = _TieLocator(chart, useful)

        automaton = grammar.automaton
        n = len(tokens)

        # Furthest end of every rule invocation on a derivation
        invocation_end: dict[tuple[int, int], int] = {}
        visited_rules: set[int] = set()
        for state_id, origin, k in useful:
            state = automaton.state(state_id)
            visited_rules.add(state.rule)
            if state.kind == StateKind.RULE_STOP:
                key = (state.rule, origin)
                invocation_end[key] = max(invocation_end.get(key, k), k)

        stats: dict[int, DecisionStatistics] = {}
        event_alts: dict[tuple[int, int], set[int]] = {}
        event_stop: dict[tuple[int, int], int] = {}
        visited_alts: dict[int, set[int]] = {}

        for state_id, origin, k in sorted(useful):
            point = prepared.decisions.get(state_id)
            if point is None:
                continue
            viable = [
                alt + 1
                for alt, transition in enumerate(automaton.outgoing(state_id))
                if self._alternative_viable(chart, useful, transition, origin, k)
            ]
            end = invocation_end.get((point.rule_index, origin), chart.furthest)

            if prepared.outer_decision.get(point.rule_index) == state_id:
                visited_alts.setdefault(point.rule_index, set()).update(viable)

            record = stats.setdefault(point.decision_id, DecisionStatistics(decision_id=point.decision_id))
            record.invocations += 1
            token_type = types[k] if k < len(types) else EOF_LABEL
            candidates = sum(
                1 for s in self._lookaheads(prepared, rule_index, point) if s.dynamic or token_type in s
            )
            if candidates <= 1:
                look = 1
            else:
                record.ll_fallback += 1
                look = max(1, end - k)
            record.total_lookahead += look
            record.max_lookahead = max(record.max_lookahead, look)

            tied = ties.tied_alternatives((state_id, origin, k), viable) if len(viable) >= 2 else set()
            if tied:
                key = (point.decision_id, k)
                event_alts.setdefault(key, set()).update(tied)
                stop = max(k, min(end - 1, n - 1))
                event_stop[key] = max(event_stop.get(key, stop), stop)

        events = [
            AmbiguityEvent(
                decision_id=decision_id,
                rule_name=grammar.rule_at(prepared.decision_rules[decision_id]).name,
                conflicting_alternatives=tuple(sorted(alts)),
                token_start_index=start,
                token_stop_index=event_stop[(decision_id, start)],
                is_exact_context=accepted,
            )
            for (decision_id, start), alts in sorted(event_alts.items())
        ]

        alternatives = {rule: sorted(alts) for rule, alts in visited_alts.items() if alts}
        for rule in visited_rules:
            if rule not in prepared.outer_decision:
                alternatives.setdefault(rule, [1])

        execution = ParseExecution(
            outcome=ParseOutcome.SUCCEEDED,
            token_count=n,
            decisions=[stats[d] for d in sorted(stats)],
            events=events,
            visited_rules=sorted(visited_rules),
            visited_alternatives=dict(sorted(alternatives.items())),
        )
        if not accepted:
            offending = tokens.token_at(chart.furthest)
            execution.outcome = ParseOutcome.FAILED_RECOVERABLE if chart.furthest > 0 else ParseOutcome.FAILED_FATAL
            execution.error_token_index = offending.index
            execution.error_message = (
                f"no viable alternative at input {offending.text!r} "
                f"(line {offending.line}, column {offending.column})"
            )
        logger.debug(
            "Parsed %d tokens from rule %d: %s, %d decision(s), %d ambiguity event(s)",
            n,
            rule_index,
            execution.outcome.value,
            len(execution.decisions),
            len(events),
        )
        return execution

    @staticmethod
    def _alternative_viable(
        chart: EarleyChart, useful: set[Triple], transition: Transition, origin: int, k: int
    ) -> bool:
        if transition.kind == TransitionKind.TERMINAL:
            return (
                k < len(chart.types)
                and chart.types[k] in transition.tokens
                and (transition.target, origin, k + 1) in useful
            )
        if transition.kind == TransitionKind.RULE_CALL:
            if transition.rule is None or transition.follow is None:
                return False
            stop = chart.index.stop_of_rule[transition.rule]
            return any(
                (transition.follow, origin, m) in useful and (stop, k, m) in useful
                for m in range(k, len(chart.sets))
            )
        return (transition.target, origin, k) in useful
