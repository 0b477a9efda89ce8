"""Tests for automaton layout in GrammarBuilder."""

import pytest

from grammarlens.core import GrammarBuilder, alt, opt, plus, seq, star, tok
from grammarlens.core.errors import AnalysisInternalError, ErrorType, InvalidGrammarError
from grammarlens.core.ir import RuleKind, StateKind, StructuredError, TransitionKind


class TestRuleLayout:
    """Tests for rule start/stop states and alternatives."""

    def test_every_rule_has_start_and_stop(self, expr_grammar):
        automaton = expr_grammar.automaton
        for rule in expr_grammar.rules:
            assert automaton.state(rule.start_state).kind == StateKind.RULE_START
            assert automaton.state(rule.stop_state).kind == StateKind.RULE_STOP
            assert automaton.state(rule.start_state).rule == rule.index

    def test_alternative_count(self, expr_grammar):
        assert expr_grammar.rule("expr").alternative_count == 2
        assert expr_grammar.rule("term").alternative_count == 1

    def test_line_is_kept(self, expr_grammar):
        assert expr_grammar.rule("expr").line == 1

    def test_rule_call_targets_callee_start(self, expr_grammar):
        term = expr_grammar.rule("term")
        calls = [t for t in expr_grammar.automaton.transitions if t.kind == TransitionKind.RULE_CALL]
        to_term = [t for t in calls if t.rule == term.index]
        assert to_term
        assert all(t.target == term.start_state for t in to_term)
        assert all(t.follow is not None for t in to_term)

    def test_decisions_numbered_in_state_order(self, loop_grammar):
        points = loop_grammar.decision_points()
        assert [p.decision_id for p in points] == list(range(len(points)))
        assert [p.state_id for p in points] == sorted(p.state_id for p in points)


class TestSubrules:
    """Tests for optional and loop blocks."""

    def test_optional_is_two_way_decision(self):
        g = GrammarBuilder("Opt")
        g.rule("s", seq("'a'", opt("'b'")))
        grammar = g.build()

        points = grammar.decision_points()
        assert len(points) == 1
        assert points[0].alternative_count == 2

    def test_star_and_plus_decisions(self):
        g = GrammarBuilder("Loops")
        g.rule("s", seq(star("'a'"), plus("'b'")))
        grammar = g.build()

        assert len(grammar.decision_points()) == 2
        assert all(p.alternative_count == 2 for p in grammar.decision_points())

    def test_token_set(self):
        g = GrammarBuilder("Set")
        g.rule("s", tok("'a'", "'b'"))
        grammar = g.build()

        terminals = [t for t in grammar.automaton.transitions if t.kind == TransitionKind.TERMINAL]
        assert terminals[0].tokens == ("'a'", "'b'")


class TestVocabulary:
    """Tests for token declarations."""

    def test_literals_come_first(self, expr_grammar):
        names = [t.name for t in expr_grammar.tokens]
        assert names == ["'+'", "NUMBER", "WS"]
        assert expr_grammar.token("'+'").is_literal
        assert expr_grammar.token("WS").skip

    def test_lexer_rule_registers_token(self):
        g = GrammarBuilder("Lex")
        g.rule("s", "ID")
        g.lexer_rule("ID", r"[a-z]+")
        g.lexer_rule("DIGIT", r"[0-9]", fragment=True)
        grammar = g.build()

        assert grammar.rule("ID").kind == RuleKind.LEXER
        assert grammar.rule("DIGIT").kind == RuleKind.FRAGMENT
        assert grammar.token("ID") is not None
        assert grammar.token("DIGIT") is None


class TestBuildErrors:
    """Tests for declarations the builder rejects."""

    def test_duplicate_rule(self):
        g = GrammarBuilder("Dup")
        g.rule("s", "'a'")
        with pytest.raises(InvalidGrammarError, match="Duplicate rule 's'"):
            g.rule("s", "'b'")

    def test_undefined_rule(self):
        g = GrammarBuilder("Undefined")
        g.rule("s", seq("'a'", "missing"))
        with pytest.raises(InvalidGrammarError, match="undefined rule 'missing'"):
            g.build()

    def test_undefined_token(self):
        g = GrammarBuilder("Undefined")
        g.rule("s", "NUMBER")
        with pytest.raises(InvalidGrammarError, match="undefined token 'NUMBER'"):
            g.build()

    def test_unknown_entry_rule(self):
        g = GrammarBuilder("Entry", entry_rules=["prog"])
        g.rule("s", "'a'")
        with pytest.raises(InvalidGrammarError, match="Entry rule 'prog'"):
            g.build()

    def test_alternatives_counted(self):
        g = GrammarBuilder("Alt")
        g.rule("s", alt("'a'", "'b'"))
        assert g.build().rule("s").alternative_count == 2


class TestOutOfRangeReferences:
    """Bad ids are automaton contract violations, reported as internal errors."""

    @pytest.mark.parametrize("state_id", [-1, 999])
    def test_state(self, expr_grammar, state_id):
        with pytest.raises(AnalysisInternalError, match=f"non-existent state {state_id}") as excinfo:
            expr_grammar.automaton.state(state_id)

        error = StructuredError.from_exception(excinfo.value)
        assert error.type == ErrorType.INTERNAL_ERROR
        assert excinfo.value.context.state == state_id

    def test_transition(self, expr_grammar):
        count = len(expr_grammar.automaton.transitions)
        with pytest.raises(AnalysisInternalError, match=f"non-existent transition {count}") as excinfo:
            expr_grammar.automaton.transition(count)
        assert excinfo.value.error_type == ErrorType.INTERNAL_ERROR

    def test_rule_at(self, expr_grammar):
        with pytest.raises(AnalysisInternalError, match="non-existent rule 7") as excinfo:
            expr_grammar.rule_at(7)
        assert StructuredError.from_exception(excinfo.value).type == ErrorType.INTERNAL_ERROR
