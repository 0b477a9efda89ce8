"""Tests for sample-driven ambiguity profiling."""

import threading

import pytest

from grammarlens.analysis.ambiguity import SUGGESTED_FIX, AmbiguityProfiler, detect_ambiguities, explain
from grammarlens.core.errors import ErrorType, RuleNotFoundError
from grammarlens.runtime import InterpreterEngine, ParseCancelled, ParseTimeoutManager

DANGLING = "if x then if y then a else b"


class SlowEngine:
    """Delegates to the interpreter but stalls on samples containing 'slow'."""

    def __init__(self):
        self.inner = InterpreterEngine()

    def tokenize(self, grammar, text):
        return self.inner.tokenize(grammar, text)

    def instrumented_parse(self, grammar, rule_index, tokens, cancel):
        if "slow" in tokens.source:
            cancel.wait(5)
            raise ParseCancelled("stalled")
        return self.inner.instrumented_parse(grammar, rule_index, tokens, cancel)


class ExplodingEngine(SlowEngine):
    def instrumented_parse(self, grammar, rule_index, tokens, cancel):
        raise RuntimeError("engine bug")


class TestExplain:
    def test_with_input(self):
        text = explain("stat", [1, 2], "else b")
        assert text == "In rule 'stat', alternatives [1, 2] are ambiguous for input: \"else b\""

    def test_suspected(self):
        assert explain("stat", [1, 2], None, exact=False).endswith("(suspected: found on the viable prefix of a rejected sample)")

    def test_without_alternatives(self):
        assert explain("stat", [], "x") == "Ambiguity detected in rule stat"


class TestDetect:
    def test_dangling_else_found(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", [DANGLING])

        assert report.success
        assert report.has_ambiguities
        assert report.ambiguities_per_rule == {"stat": 1}
        amb = report.ambiguities[0]
        assert amb.rule_name == "stat"
        assert amb.conflicting_alternatives == [1, 2]
        assert amb.input_text == "else b"
        assert (amb.line, amb.column) == (1, 22)
        assert amb.is_full_context
        assert amb.explanation.startswith("In rule 'stat', alternatives [1, 2] are ambiguous")
        assert amb.suggested_fix == SUGGESTED_FIX

    def test_unambiguous_samples(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", ["x", "if x then a else b"])

        assert not report.has_ambiguities
        assert report.total_samples_parsed == 2
        assert report.samples_failed == 0

    def test_left_recursive_grammar_has_no_false_positive(self, expr_grammar):
        report = detect_ambiguities(expr_grammar, "expr", ["1 + 2 + 3"])
        assert report.ambiguity_count == 0

    def test_left_recursive_rule_in_ambiguous_sample(self, if_expr_grammar):
        report = detect_ambiguities(if_expr_grammar, "stat", ["if a + b + c then if c then d else e"])

        assert report.ambiguities_per_rule == {"stat": 1}
        assert report.ambiguities[0].input_text == "else e"

    def test_ambiguity_between_rule_alternatives(self, if_alternatives_grammar):
        report = detect_ambiguities(if_alternatives_grammar, "stat", [DANGLING])

        assert report.ambiguities_per_rule == {"stat": 1}
        amb = report.ambiguities[0]
        assert amb.conflicting_alternatives == [1, 2]
        assert amb.input_text == DANGLING
        assert (amb.line, amb.column) == (1, 0)

    def test_canonical_json_is_deterministic(self, dangling_else_grammar):
        samples = [DANGLING, "x", "if a then b", DANGLING]
        first = detect_ambiguities(dangling_else_grammar, "stat", samples)
        second = detect_ambiguities(dangling_else_grammar, "stat", samples, max_workers=1)

        assert first.canonical_json() == second.canonical_json()
        assert [a.sample_index for a in first.ambiguities] == [0, 3]

    def test_no_samples(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", [])

        assert report.success
        assert report.total_samples == 0
        assert report.coverage.rules_declared == 1

    def test_unknown_start_rule(self, dangling_else_grammar):
        with pytest.raises(RuleNotFoundError):
            detect_ambiguities(dangling_else_grammar, "nope", ["x"])


class TestSampleFailures:
    """One bad sample never costs the results of the others."""

    def test_tokenize_error(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", ["x", "if # then"])

        assert report.samples_failed == 1
        assert report.total_samples_parsed == 1
        failed = report.samples[1]
        assert failed.outcome == "error"
        assert failed.error.type == ErrorType.TOKENIZE_ERROR
        assert "1:3" in failed.error.message

    def test_syntax_error_after_prefix_still_counts_as_parsed(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", ["if x then"])

        sample = report.samples[0]
        assert sample.outcome == "failed_recoverable"
        assert sample.error.type == ErrorType.PARSE_ERROR
        assert report.total_samples_parsed == 1

    def test_timeout_is_per_sample(self, dangling_else_grammar):
        profiler = AmbiguityProfiler(engine=SlowEngine(), timeout_manager=ParseTimeoutManager(5.0))
        report = profiler.detect(dangling_else_grammar, "stat", [DANGLING, "slow"], per_sample_timeout=0.2)

        assert report.samples_failed == 1
        assert report.samples[1].error.type == ErrorType.PARSE_TIMEOUT
        assert report.ambiguity_count == 1

    def test_unexpected_engine_error(self, dangling_else_grammar):
        report = AmbiguityProfiler(engine=ExplodingEngine()).detect(dangling_else_grammar, "stat", ["x"])

        assert report.samples_failed == 1
        assert report.samples[0].error.type == ErrorType.INTERNAL_ERROR
        assert report.samples[0].error.message == "engine bug"


class TestProfiles:
    def test_decision_profiles(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", [DANGLING])

        by_decision = {p.decision: p for p in report.decision_profiles}
        assert set(by_decision) == {0, 1}
        assert all(p.rule_name == "stat" for p in report.decision_profiles)
        assert by_decision[1].ambiguities == 1
        assert by_decision[0].invocations >= 3

    def test_coverage(self, dangling_else_grammar):
        report = detect_ambiguities(dangling_else_grammar, "stat", ["x"])

        assert report.coverage.visited_rules == ["stat"]
        assert report.coverage.visited_alternatives == {"stat": [2]}
        assert report.coverage.coverage_ratio == 1.0
