"""Tests for structural grammar validation."""

import pytest

from grammarlens.analysis.validation import ensure_valid, validate_grammar
from grammarlens.core.errors import InvalidGrammarError
from grammarlens.core.ir import CompiledGrammar


def mutate(grammar: CompiledGrammar, edit) -> CompiledGrammar:
    data = grammar.model_dump(mode="json")
    edit(data)
    return CompiledGrammar.model_validate(data)


def terminal_index(data: dict) -> int:
    for i, t in enumerate(data["automaton"]["transitions"]):
        if t["kind"] == "terminal":
            return i
    raise AssertionError("no terminal transition")


class TestValidGrammars:
    def test_success_with_stats(self, expr_grammar):
        result = validate_grammar(expr_grammar)

        assert result.success
        assert result.fatal_issues == []
        assert result.grammar_name == "Expr"
        assert result.fingerprint == expr_grammar.fingerprint()
        assert result.stats.states == len(expr_grammar.automaton.states)
        assert result.stats.decisions == 1

    def test_unreachable_rule_is_a_warning(self, unused_grammar):
        result = validate_grammar(unused_grammar)

        assert result.success
        codes = {(w.code, w.rule) for w in result.warnings}
        assert ("unreachable_rule", "orphan") in codes

    def test_ensure_valid_returns_result(self, loop_grammar):
        assert ensure_valid(loop_grammar).success


class TestBrokenGrammars:
    def test_transition_to_missing_state(self, expr_grammar):
        def edit(data):
            data["automaton"]["transitions"][0]["target"] = 999

        result = validate_grammar(mutate(expr_grammar, edit))

        assert not result.success
        assert "missing_state" in {i.code for i in result.fatal_issues}

    def test_unknown_token(self, expr_grammar):
        def edit(data):
            data["automaton"]["transitions"][terminal_index(data)]["tokens"] = ["NOPE"]

        result = validate_grammar(mutate(expr_grammar, edit))

        assert "unknown_token" in {i.code for i in result.fatal_issues}

    def test_duplicate_rule_name(self, expr_grammar):
        def edit(data):
            data["rules"][1]["name"] = "expr"

        result = validate_grammar(mutate(expr_grammar, edit))

        assert "duplicate_rule" in {i.code for i in result.fatal_issues}

    def test_unknown_entry_rule(self, expr_grammar):
        def edit(data):
            data["entry_rules"] = ["prog"]

        result = validate_grammar(mutate(expr_grammar, edit))

        assert "unknown_entry_rule" in {i.code for i in result.fatal_issues}

    def test_bad_call_target(self, expr_grammar):
        def edit(data):
            for t in data["automaton"]["transitions"]:
                if t["kind"] == "rule_call":
                    t["target"] = data["rules"][t["rule"]]["stop_state"]
                    return

        result = validate_grammar(mutate(expr_grammar, edit))

        assert "bad_call_target" in {i.code for i in result.fatal_issues}

    def test_ensure_valid_raises_first_issue(self, expr_grammar):
        def edit(data):
            data["automaton"]["transitions"][0]["target"] = 999

        with pytest.raises(InvalidGrammarError, match="non-existent state 999"):
            ensure_valid(mutate(expr_grammar, edit))
