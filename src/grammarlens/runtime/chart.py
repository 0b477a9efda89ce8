"""
Earley-style chart recognition over a grammar automaton.

An item ``(state, origin)`` in set ``k`` means: the rule owning ``state``
was entered at token ``origin`` and, having consumed tokens
``origin..k-1``, the parse can be at ``state``. Set ``k`` is closed under
three operations:

- predict: a rule call adds the callee's start state with origin ``k``
- scan: a terminal matching token ``k`` adds its target to set ``k+1``
- complete: a rule's stop state resumes every caller waiting on it

Because items carry origins rather than a call stack, left recursion and
nullable rules need no special treatment beyond the usual bookkeeping for
empty completions. The token list ends with ``EOF``, so there are
``n + 2`` sets for ``n`` real tokens.

After recognition, ``useful_items`` walks the chart backwards from the
accepting item (or from the furthest reachable set when the input is
rejected) to keep only items that lie on some derivation.
``derivation_counts`` then counts, per useful item, the distinct ways it
is reached from its invocation's start. Restricted to left-recursive
groups, the counts tell a span with two derivations from one whose nested
invocations merely share chart items.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..analysis.rule_graph import strongly_connected_components
from ..core.ir import CompiledGrammar, StateKind, TransitionKind
from .protocols import ParseCancelled

Item = tuple[int, int]  # (state, origin)
Triple = tuple[int, int, int]  # (state, origin, position)
Invocation = tuple[int, int]  # (rule, origin)

# Derivation counts saturate here; two is all it takes to be ambiguous
AMBIGUOUS = 2


@dataclass
class EarleySet:
    items: list[Item] = field(default_factory=list)
    index: set[Item] = field(default_factory=set)
    # callee rule -> [(follow state, caller origin)]
    waiting: dict[int, list[Item]] = field(default_factory=dict)
    # rules completed with an empty span ending here
    empty_completions: set[int] = field(default_factory=set)

    def __contains__(self, item: Item) -> bool:
        return item in self.index

    def __len__(self) -> int:
        return len(self.items)


class ChartIndex:
    """
    Reverse edges of an automaton, used by the backward pass.

    For every state: which states reach it without input, which reach it by
    a terminal, and which call sites resume at it.
    """

    def __init__(self, grammar: CompiledGrammar):
        automaton = grammar.automaton
        self.grammar = grammar
        self.stop_of_rule = [r.stop_state for r in grammar.rules]
        self.start_of_rule = [r.start_state for r in grammar.rules]
        n = len(automaton.states)
        self.free_preds: list[list[int]] = [[] for _ in range(n)]
        self.scan_preds: list[list[tuple[int, tuple[str, ...]]]] = [[] for _ in range(n)]
        self.call_preds: list[list[tuple[int, int]]] = [[] for _ in range(n)]
        for state in automaton.states:
            if state.kind == StateKind.RULE_STOP:
                continue
            for transition in automaton.outgoing(state.id):
                if transition.kind == TransitionKind.TERMINAL:
                    self.scan_preds[transition.target].append((state.id, transition.tokens))
                elif transition.kind == TransitionKind.RULE_CALL:
                    if transition.follow is not None and transition.rule is not None:
                        self.call_preds[transition.follow].append((state.id, transition.rule))
                else:
                    self.free_preds[transition.target].append(state.id)


class EarleyChart:
    """
    Chart for one parse of one token sequence.

    Args:
        index: Precomputed reverse edges for the grammar
        token_types: Token type names, ending with ``EOF``
        start_rule: Rule index the parse starts at
        cancel: Checked once per chart position
    """

    def __init__(
        self,
        index: ChartIndex,
        token_types: list[str],
        start_rule: int,
        cancel: threading.Event | None = None,
    ):
        self.index = index
        self.automaton = index.grammar.automaton
        self.types = token_types
        self.start_rule = start_rule
        self.cancel = cancel
        self.sets: list[EarleySet] = [EarleySet() for _ in range(len(token_types) + 1)]
        self.accept_position: int | None = None
        self.furthest = 0

    # -- recognition ----------------------------------------------------------

    def _add(self, k: int, state: int, origin: int) -> None:
        item = (state, origin)
        target = self.sets[k]
        if item not in target.index:
            target.index.add(item)
            target.items.append(item)

    def _close(self, k: int) -> None:
        current = self.sets[k]
        i = 0
        while i < len(current.items):
            state_id, origin = current.items[i]
            i += 1
            state = self.automaton.state(state_id)
            if state.kind == StateKind.RULE_STOP:
                if origin == k:
                    current.empty_completions.add(state.rule)
                for follow, caller_origin in list(self.sets[origin].waiting.get(state.rule, ())):
                    self._add(k, follow, caller_origin)
                continue
            for transition in self.automaton.outgoing(state_id):
                kind = transition.kind
                if kind == TransitionKind.TERMINAL:
                    if k < len(self.types) and self.types[k] in transition.tokens:
                        self._add(k + 1, transition.target, origin)
                elif kind == TransitionKind.RULE_CALL:
                    callee = transition.rule
                    if callee is None or transition.follow is None:
                        continue
                    current.waiting.setdefault(callee, []).append((transition.follow, origin))
                    self._add(k, self.index.start_of_rule[callee], k)
                    if callee in current.empty_completions:
                        self._add(k, transition.follow, origin)
                else:
                    self._add(k, transition.target, origin)

    def recognize(self) -> bool:
        """Fill the chart; True if the whole input derives from the start rule."""
        self._add(0, self.index.start_of_rule[self.start_rule], 0)
        for k in range(len(self.sets)):
            if self.cancel is not None and self.cancel.is_set():
                raise ParseCancelled(f"cancelled at token {k}")
            if not self.sets[k].items:
                break
            self.furthest = k
            self._close(k)

        final = (self.index.stop_of_rule[self.start_rule], 0)
        n = len(self.types) - 1
        for position in (n + 1, n):
            if final in self.sets[position]:
                self.accept_position = position
                return True
        return False

    @property
    def accepted(self) -> bool:
        return self.accept_position is not None

    # -- backward pass --------------------------------------------------------

    def has(self, state: int, origin: int, k: int) -> bool:
        return 0 <= k < len(self.sets) and (state, origin) in self.sets[k].index

    def seeds(self) -> list[Triple]:
        """Accepting item for accepted input, otherwise every item of the furthest set."""
        if self.accept_position is not None:
            return [(self.index.stop_of_rule[self.start_rule], 0, self.accept_position)]
        k = self.furthest
        return [(s, o, k) for s, o in self.sets[k].items]

    def useful_items(self, seeds: Iterable[Triple] | None = None) -> set[Triple]:
        """Items that lie on a derivation ending in one of ``seeds``."""
        start = list(seeds) if seeds is not None else self.seeds()
        useful: set[Triple] = set(start)
        work = list(start)

        def mark(triple: Triple) -> None:
            if triple not in useful:
                useful.add(triple)
                work.append(triple)

        while work:
            if self.cancel is not None and self.cancel.is_set():
                raise ParseCancelled("cancelled during chart analysis")
            state, origin, k = work.pop()
            for pred in self.index.free_preds[state]:
                if self.has(pred, origin, k):
                    mark((pred, origin, k))
            if k > 0:
                scanned = self.types[k - 1]
                for pred, tokens in self.index.scan_preds[state]:
                    if scanned in tokens and self.has(pred, origin, k - 1):
                        mark((pred, origin, k - 1))
            for pred, callee in self.index.call_preds[state]:
                stop = self.index.stop_of_rule[callee]
                for j in range(origin, k + 1):
                    if self.has(pred, origin, j) and self.has(stop, j, k):
                        mark((pred, origin, j))
                        mark((stop, j, k))
        return useful

    def left_recursive_groups(self, useful: set[Triple]) -> dict[Invocation, int]:
        """
        Group the invocations that call each other without consuming input.

        Nested invocations of a left-recursive rule start at the same token and
        therefore share chart items. Each cycle of same-origin calls among
        useful items becomes one group; the result maps every invocation
        ``(rule, origin)`` on such a cycle to its group number.
        """
        adjacency: dict[Invocation, list[Invocation]] = {}
        for state_id, origin, k in useful:
            if k != origin:
                continue
            for transition in self.automaton.outgoing(state_id):
                if transition.kind != TransitionKind.RULE_CALL or transition.rule is None:
                    continue
                if (self.index.start_of_rule[transition.rule], origin, origin) not in useful:
                    continue
                callees = adjacency.setdefault((self.automaton.state(state_id).rule, origin), [])
                if (transition.rule, origin) not in callees:
                    callees.append((transition.rule, origin))

        nodes = sorted(set(adjacency) | {c for callees in adjacency.values() for c in callees})
        number = {invocation: i for i, invocation in enumerate(nodes)}
        numbered = {number[caller]: [number[c] for c in callees] for caller, callees in adjacency.items()}
        groups: dict[Invocation, int] = {}
        for group, component in enumerate(strongly_connected_components(numbered, list(range(len(nodes))))):
            if len(component) > 1 or component[0] in numbered.get(component[0], []):
                for member in component:
                    groups[nodes[member]] = group
        return groups

    def derivation_counts(
        self, useful: set[Triple], groups: dict[Invocation, int] | None = None
    ) -> dict[Triple, int]:
        """
        Number of ways each useful item is reached from its rule invocation's start.

        Counts saturate at ``AMBIGUOUS``; a completed span (a rule's stop item)
        with that count has more than one derivation. Items are processed by
        position; within a position the counts are iterated to a fixed point
        because empty completions and epsilon edges stay at the same position.

        With ``groups`` (see ``left_recursive_groups``) a completed call counts
        once unless caller and callee share a group, so a count of
        ``AMBIGUOUS`` marks a span whose own body, not a nested rule, can be
        derived in two ways.
        """
        by_position: dict[int, list[Triple]] = {}
        for triple in useful:
            by_position.setdefault(triple[2], []).append(triple)
        counts: dict[Triple, int] = dict.fromkeys(useful, 0)

        for k in sorted(by_position):
            items = sorted(by_position[k])
            changed = True
            while changed:
                if self.cancel is not None and self.cancel.is_set():
                    raise ParseCancelled("cancelled while counting derivations")
                changed = False
                for triple in items:
                    total = self._incoming_count(triple, counts, groups)
                    if total > counts[triple]:
                        counts[triple] = total
                        changed = True
        return counts

    def _incoming_count(
        self, triple: Triple, counts: dict[Triple, int], groups: dict[Invocation, int] | None
    ) -> int:
        state, origin, k = triple
        rule = self.automaton.state(state).rule
        total = 1 if state == self.index.start_of_rule[rule] and origin == k else 0
        for pred in self.index.free_preds[state]:
            total += counts.get((pred, origin, k), 0)
        if k > 0:
            scanned = self.types[k - 1]
            for pred, tokens in self.index.scan_preds[state]:
                if scanned in tokens:
                    total += counts.get((pred, origin, k - 1), 0)
        group = groups.get((rule, origin)) if groups is not None else None
        for pred, callee in self.index.call_preds[state]:
            stop = self.index.stop_of_rule[callee]
            for j in range(origin, k + 1):
                inner = counts.get((stop, j, k), 0)
                if groups is not None and inner and (group is None or groups.get((callee, j)) != group):
                    inner = 1
                total += counts.get((pred, origin, j), 0) * inner
            if total >= AMBIGUOUS:
                break
        return min(total, AMBIGUOUS)
