"""Tests for the report-returning operations."""

import pytest

from grammarlens import operations
from grammarlens.core.config import CacheConfig, GrammarLensConfig
from grammarlens.core.loader import GrammarCache, dump_grammar
from grammarlens.core.errors import ErrorType


class TestValidate:
    def test_from_path(self, grammar_file):
        result = operations.validate(grammar_file)

        assert result.success
        assert result.grammar_name == "IfThenElse"
        assert result.fatal_issues == []

    def test_from_string_path(self, grammar_file):
        assert operations.validate(str(grammar_file)).success

    def test_missing_file(self, tmp_path):
        result = operations.validate(tmp_path / "missing.json")

        assert not result.success
        assert result.errors[0].type == ErrorType.INVALID_GRAMMAR

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        result = operations.validate(path)
        assert not result.success
        assert result.errors[0].type == ErrorType.INVALID_GRAMMAR


class TestAnalyses:
    def test_call_graph_entry_rules_from_config(self, unused_grammar):
        config = GrammarLensConfig()
        config.analysis.entry_rules = ["prog", "orphan"]

        graph = operations.analyze_call_graph(unused_grammar, config)
        assert graph.success
        assert graph.unused_rules == []

    def test_left_recursion_legacy_mode(self, mutual_grammar):
        config = GrammarLensConfig()
        config.analysis.verify_leftmost = False

        report = operations.analyze_left_recursion(mutual_grammar, config)
        assert not report.leftmost_verified
        assert report.indirect_count == 1

    def test_complexity(self, expr_grammar):
        assert operations.analyze_complexity(expr_grammar).most_complex[0] == "expr"

    def test_first_follow_unknown_rule(self, expr_grammar):
        report = operations.analyze_first_follow(expr_grammar, "nope")

        assert not report.success
        assert report.errors[0].type == ErrorType.RULE_NOT_FOUND
        assert report.errors[0].rule == "nope"

    def test_visualize_decisions(self, grammar_file):
        result = operations.visualize_decisions(grammar_file, "stat")
        assert result.total_decisions == 2


class TestDetectAmbiguity:
    def test_with_config(self, grammar_file):
        config = GrammarLensConfig()
        config.profiler.max_workers = 1
        config.profiler.sample_timeout_seconds = 2.0

        report = operations.detect_ambiguity(grammar_file, "stat", ["if x then if y then a else b"], config)
        assert report.success
        assert report.has_ambiguity_in_rule("stat")

    def test_unknown_start_rule(self, grammar_file):
        report = operations.detect_ambiguity(grammar_file, "nope", ["x"])

        assert not report.success
        assert report.errors[0].type == ErrorType.RULE_NOT_FOUND

    @pytest.mark.parametrize("samples", [[], ["x"]])
    def test_report_serializes(self, grammar_file, samples):
        report = operations.detect_ambiguity(grammar_file, "stat", samples)
        assert '"start_rule": "stat"' in report.to_json()


class TestErrorHandling:
    def test_unexpected_exception_becomes_internal_error(self, expr_grammar, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(operations, "build_graph", broken)
        report = operations.analyze_call_graph(expr_grammar)

        assert not report.success
        assert report.errors[0].type == ErrorType.INTERNAL_ERROR
        assert report.errors[0].message == "kaboom"


class TestConfigure:
    def test_cache_size_from_config(self, tmp_path, expr_grammar, loop_grammar, monkeypatch):
        monkeypatch.setattr(operations, "_cache", GrammarCache())
        operations.configure(GrammarLensConfig(cache=CacheConfig(max_entries=1)))
        for grammar in (expr_grammar, loop_grammar):
            path = tmp_path / f"{grammar.name}.json"
            dump_grammar(grammar, path)
            assert operations.validate(path).success

        cache = operations.grammar_cache()
        assert cache.max_entries == 1
        assert len(cache) == 1
        assert cache.evictions == 1
