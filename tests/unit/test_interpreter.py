"""Tests for the chart-based reference parse engine."""

import threading

import pytest

from grammarlens.runtime import InterpreterEngine, ParseCancelled, ParseEngine, ParseOutcome


def parse(grammar, rule, text, cancel=None):
    engine = InterpreterEngine()
    tokens = engine.tokenize(grammar, text)
    return engine.instrumented_parse(grammar, grammar.rule_index(rule), tokens, cancel or threading.Event())


class TestOutcome:
    def test_engine_satisfies_protocol(self):
        assert isinstance(InterpreterEngine(), ParseEngine)

    def test_left_recursive_input_accepted(self, expr_grammar):
        execution = parse(expr_grammar, "expr", "1 + 2 + 3")

        assert execution.outcome == ParseOutcome.SUCCEEDED
        assert execution.token_count == 5
        assert execution.events == []

    def test_error_after_prefix_is_recoverable(self, expr_grammar):
        execution = parse(expr_grammar, "expr", "1 +")

        assert execution.outcome == ParseOutcome.FAILED_RECOVERABLE
        assert execution.error_token_index == 2
        assert "<EOF>" in execution.error_message

    def test_error_at_first_token_is_fatal(self, expr_grammar):
        execution = parse(expr_grammar, "expr", "+")
        assert execution.outcome == ParseOutcome.FAILED_FATAL

    def test_left_recursion_through_nullable_rule(self, nullable_prefix_grammar):
        execution = parse(nullable_prefix_grammar, "a", "yxx")

        assert execution.outcome == ParseOutcome.SUCCEEDED
        assert execution.visited_rules == [0, 1]

    def test_cancel_event(self, expr_grammar):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ParseCancelled):
            parse(expr_grammar, "expr", "1 + 2", cancel)


class TestPreparedTables:
    def test_least_recently_used_grammar_dropped(self, expr_grammar, loop_grammar):
        engine = InterpreterEngine(max_prepared=1)
        engine.tokenize(expr_grammar, "1")
        engine.tokenize(loop_grammar, "1")

        assert len(engine) == 1
        tokens = engine.tokenize(expr_grammar, "1 + 2")
        execution = engine.instrumented_parse(expr_grammar, 0, tokens, threading.Event())
        assert execution.outcome == ParseOutcome.SUCCEEDED
        assert len(engine) == 1

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError, match="at least 1"):
            InterpreterEngine(max_prepared=0)


class TestAmbiguityEvents:
    """The dangling else is the canonical ambiguous input."""

    def test_dangling_else(self, dangling_else_grammar):
        execution = parse(dangling_else_grammar, "stat", "if x then if y then a else b")

        assert execution.outcome == ParseOutcome.SUCCEEDED
        assert len(execution.events) == 1
        event = execution.events[0]
        assert event.decision_id == 1
        assert event.rule_name == "stat"
        assert event.conflicting_alternatives == (1, 2)
        assert event.token_start_index == 7
        assert event.token_stop_index == 8
        assert event.is_exact_context

    def test_single_if_else_is_not_ambiguous(self, dangling_else_grammar):
        execution = parse(dangling_else_grammar, "stat", "if x then a else b")
        assert execution.events == []

    def test_left_recursion_is_not_ambiguous(self, expr_grammar):
        execution = parse(expr_grammar, "expr", "1 + 2 + 3 + 4")
        assert execution.events == []

    def test_left_recursive_rule_inside_ambiguous_input(self, if_expr_grammar):
        execution = parse(if_expr_grammar, "stat", "if a + b + c then if c then d else e")

        assert execution.outcome == ParseOutcome.SUCCEEDED
        assert [e.rule_name for e in execution.events] == ["stat"]
        event = execution.events[0]
        assert event.decision_id == 1
        assert event.conflicting_alternatives == (1, 2)
        assert event.token_start_index == 11
        assert event.token_stop_index == 12

    def test_left_recursive_rule_alone_is_not_ambiguous(self, if_expr_grammar):
        execution = parse(if_expr_grammar, "stat", "if a + b + c then d else e")
        assert execution.events == []

    def test_tie_between_rule_alternatives(self, if_alternatives_grammar):
        execution = parse(if_alternatives_grammar, "stat", "if x then if y then a else b")

        assert len(execution.events) == 1
        event = execution.events[0]
        assert event.rule_name == "stat"
        assert event.conflicting_alternatives == (1, 2)
        assert event.token_start_index == 0
        assert event.token_stop_index == 8

    def test_inner_if_of_alternatives_is_not_reported(self, if_alternatives_grammar):
        execution = parse(if_alternatives_grammar, "stat", "if x then if y then a else b else c")
        assert execution.events == []


class TestStatistics:
    def test_loop_decisions_need_one_token(self, loop_grammar):
        execution = parse(loop_grammar, "expr", "1 + 2 - 3")

        assert execution.decisions
        assert all(d.ll_fallback == 0 for d in execution.decisions)
        assert all(d.max_lookahead == 1 for d in execution.decisions)

    def test_left_recursive_decision_falls_back(self, expr_grammar):
        execution = parse(expr_grammar, "expr", "1 + 2")

        assert execution.decisions[0].decision_id == 0
        assert execution.decisions[0].ll_fallback > 0
        assert execution.decisions[0].max_lookahead > 1

    def test_coverage(self, dangling_else_grammar):
        execution = parse(dangling_else_grammar, "stat", "x")

        assert execution.visited_rules == [0]
        assert execution.visited_alternatives == {0: [2]}
