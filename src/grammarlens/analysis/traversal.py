"""
Shared automaton traversals.

All walks here stay inside one rule: a rule call is stepped over (the walk
continues at the call's follow state) and states owned by other rules are
never entered. Every walk keeps a visited set, so loops and recursion
terminate.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from ..core.ir import Automaton, CompiledGrammar, Transition, TransitionKind


def step_target(transition: Transition) -> int:
    """State where an in-rule walk continues after ``transition``."""
    if transition.kind == TransitionKind.RULE_CALL and transition.follow is not None:
        return transition.follow
    return transition.target


def in_rule_edges(automaton: Automaton, state_id: int) -> Iterator[tuple[Transition, int]]:
    """Yield (transition, next state) pairs that stay within the state's rule."""
    owner = automaton.state(state_id).rule
    for transition in automaton.outgoing(state_id):
        nxt = step_target(transition)
        if automaton.state(nxt).rule == owner:
            yield transition, nxt


def walk_rule(grammar: CompiledGrammar, rule_index: int) -> list[int]:
    """States of a rule reachable from its start state, in BFS order."""
    automaton = grammar.automaton
    start = grammar.rule_at(rule_index).start_state
    order = [start]
    seen = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for _, nxt in in_rule_edges(automaton, current):
            if nxt not in seen:
                seen.add(nxt)
                order.append(nxt)
                queue.append(nxt)
    return order


def reachable_states(grammar: CompiledGrammar, rule_index: int) -> frozenset[int]:
    return frozenset(walk_rule(grammar, rule_index))


def rule_calls(grammar: CompiledGrammar, rule_index: int) -> list[Transition]:
    """Rule-call transitions reachable inside a rule, in BFS order."""
    automaton = grammar.automaton
    return [
        t
        for state_id in walk_rule(grammar, rule_index)
        for t in automaton.outgoing(state_id)
        if t.kind == TransitionKind.RULE_CALL
    ]


def reaches_stop_without_input(
    automaton: Automaton, source: int, stop: int, nullable: set[int] | frozenset[int]
) -> bool:
    """
    True if ``stop`` is reachable from ``source`` without consuming a token.

    Epsilon and predicate transitions are free; a rule call is free when the
    callee is in ``nullable``.
    """
    seen = {source}
    stack = [source]
    while stack:
        current = stack.pop()
        if current == stop:
            return True
        for transition, nxt in in_rule_edges(automaton, current):
            if transition.kind == TransitionKind.TERMINAL:
                continue
            if transition.kind == TransitionKind.RULE_CALL and transition.rule not in nullable:
                continue
            if nxt not in seen:
                seen.add(nxt)
                stack.append(nxt)
    return False


def nullable_rules(grammar: CompiledGrammar) -> frozenset[int]:
    """Indices of rules that can derive the empty token sequence (fixed point)."""
    nullable: set[int] = set()
    changed = True
    while changed:
        changed = False
        for rule in grammar.rules:
            if rule.index in nullable:
                continue
            if reaches_stop_without_input(grammar.automaton, rule.start_state, rule.stop_state, nullable):
                nullable.add(rule.index)
                changed = True
    return frozenset(nullable)


def owning_rule(grammar: CompiledGrammar, state_id: int, reachable: dict[int, frozenset[int]]) -> int | None:
    """
    Find the rule whose reachable-state set contains ``state_id``.

    ``reachable`` maps rule index to ``reachable_states``; rules are searched
    in declaration order.
    """
    for rule in grammar.rules:
        if state_id in reachable.get(rule.index, frozenset()):
            return rule.index
    return None
