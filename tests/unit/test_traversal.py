"""Tests for shared in-rule automaton walks."""

from grammarlens.analysis.traversal import (
    nullable_rules,
    owning_rule,
    reachable_states,
    rule_calls,
    walk_rule,
)
from grammarlens.core.ir import StateKind


class TestWalkRule:
    def test_starts_at_rule_start_and_reaches_stop(self, expr_grammar):
        rule = expr_grammar.rule("expr")
        order = walk_rule(expr_grammar, rule.index)

        assert order[0] == rule.start_state
        assert rule.stop_state in order

    def test_never_leaves_the_rule(self, expr_grammar):
        rule = expr_grammar.rule("expr")
        for state_id in walk_rule(expr_grammar, rule.index):
            assert expr_grammar.automaton.state(state_id).rule == rule.index

    def test_loops_terminate(self, loop_grammar):
        rule = loop_grammar.rule("expr")
        states = walk_rule(loop_grammar, rule.index)
        assert len(states) == len(set(states))

    def test_rule_calls_in_order(self, expr_grammar):
        calls = rule_calls(expr_grammar, expr_grammar.rule_index("expr"))
        callees = [expr_grammar.rule_at(c.rule).name for c in calls]
        assert sorted(callees) == ["expr", "term", "term"]


class TestNullable:
    def test_empty_rule_is_nullable(self, nullable_prefix_grammar):
        nullable = nullable_rules(nullable_prefix_grammar)
        assert nullable_prefix_grammar.rule_index("n") in nullable
        assert nullable_prefix_grammar.rule_index("a") not in nullable

    def test_token_rules_are_not_nullable(self, expr_grammar):
        assert nullable_rules(expr_grammar) == frozenset()


class TestOwningRule:
    def test_decision_state_owner(self, dangling_else_grammar):
        reachable = {r.index: reachable_states(dangling_else_grammar, r.index) for r in dangling_else_grammar.rules}
        point = dangling_else_grammar.decision_points()[0]

        owner = owning_rule(dangling_else_grammar, point.state_id, reachable)

        assert owner == dangling_else_grammar.rule_index("stat")
        assert dangling_else_grammar.automaton.state(point.state_id).kind == StateKind.DECISION

    def test_unknown_state(self, expr_grammar):
        assert owning_rule(expr_grammar, 10_000, {}) is None
