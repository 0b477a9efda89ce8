"""Tests for the rule dependency graph."""

import pytest

from grammarlens.analysis.rule_graph import (
    build_graph,
    condensed_depths,
    find_cycles,
    strongly_connected_components,
    to_dot,
    to_mermaid,
)
from grammarlens.core import GrammarBuilder, seq
from grammarlens.core.errors import RuleNotFoundError


class TestGraphAlgorithms:
    """Tests for the plain adjacency algorithms."""

    def test_find_cycles_dedupes_by_members(self):
        adjacency = {0: [1], 1: [0, 2], 2: [1]}
        cycles = find_cycles(adjacency, [0, 1, 2])
        assert [sorted(c) for c in cycles] == [[0, 1], [1, 2]]

    def test_self_loop_is_a_cycle(self):
        assert find_cycles({0: [0]}, [0]) == [[0]]

    def test_deep_chain_does_not_recurse(self):
        n = 5000
        adjacency = {i: [i + 1] for i in range(n)}
        adjacency[n] = [0]
        cycles = find_cycles(adjacency, list(range(n + 1)))
        assert len(cycles) == 1
        assert len(cycles[0]) == n + 1

    def test_components(self):
        adjacency = {0: [1], 1: [0], 2: [0]}
        components = strongly_connected_components(adjacency, [0, 1, 2])
        assert sorted(components) == [[0, 1], [2]]

    def test_depths_collapse_cycles(self):
        adjacency = {0: [1], 1: [2], 2: [1, 3], 3: []}
        depths = condensed_depths(adjacency, [0, 1, 2, 3])
        assert depths == {0: 0, 1: 1, 2: 1, 3: 2}


class TestBuildGraph:
    """Tests for graph construction from grammars."""

    def test_mutual_recursion_single_cycle(self, mutual_grammar):
        graph = build_graph(mutual_grammar)

        assert len(graph.cycles) == 1
        assert sorted(graph.cycles[0].rules) == ["a", "b"]
        assert graph.recursive_rules == ["a", "b"]

    def test_self_recursion(self, expr_grammar):
        graph = build_graph(expr_grammar)

        assert [c.rules for c in graph.cycles] == [["expr"]]
        assert graph.cycles[0].is_self_loop
        assert graph.node("expr").recursive
        assert not graph.node("term").recursive

    def test_unused_and_unreachable(self, unused_grammar):
        graph = build_graph(unused_grammar)

        assert graph.unused_rules == ["orphan"]
        assert graph.unreachable_rules == ["orphan"]
        assert graph.node("stat").reachable

    def test_self_call_does_not_count_as_use(self):
        from grammarlens.core import GrammarBuilder, alt, seq

        g = GrammarBuilder("SelfOnly", entry_rules=["s"])
        g.rule("s", "'a'")
        g.rule("list", alt(seq("list", "','", "'a'"), "'a'"))
        graph = build_graph(g.build())

        assert "list" in graph.unused_rules

    def test_fan_in_fan_out_and_depth(self, expr_grammar):
        graph = build_graph(expr_grammar)

        assert graph.fan_out == {"expr": 2, "term": 0}
        assert graph.fan_in == {"expr": 1, "term": 1}
        assert graph.depths == {"expr": 0, "term": 1}
        assert sorted(graph.callees("expr")) == ["expr", "term"]

    def test_call_sites_counted(self, expr_grammar):
        graph = build_graph(expr_grammar)
        edge = next(e for e in graph.edges if e.caller == "expr" and e.callee == "term")
        assert edge.call_sites == 2

    def test_explicit_entry_rules(self, unused_grammar):
        graph = build_graph(unused_grammar, entry_rules=["prog", "orphan"])
        assert graph.unused_rules == []
        assert graph.entry_rules == ["prog", "orphan"]

    def test_unknown_entry_rule(self, unused_grammar):
        with pytest.raises(RuleNotFoundError):
            build_graph(unused_grammar, entry_rules=["nope"])


class TestRenderings:
    """Tests for DOT and Mermaid output."""

    def test_dot(self, unused_grammar):
        dot = to_dot(build_graph(unused_grammar))

        assert dot.startswith("digraph CallGraph {")
        assert '"prog" -> "stat";' in dot
        assert '"orphan" [fillcolor="lightgray", shape=box, style="dashed,filled"];' in dot

    def test_mermaid(self, expr_grammar):
        mermaid = to_mermaid(build_graph(expr_grammar))

        assert mermaid.startswith("graph LR")
        assert 'r0_expr["⟳ expr"] --> r1_term["term"]' in mermaid

    def test_mermaid_lists_rules_without_edges(self, unused_grammar):
        lines = to_mermaid(build_graph(unused_grammar)).splitlines()

        assert '  r0_prog["prog"] --> r1_stat["stat"]' in lines
        assert '  r2_orphan["✗ orphan"]' in lines

    def test_mermaid_ids_stay_distinct(self):
        g = GrammarBuilder("Names", entry_rules=["a_b"])
        g.rule("a_b", seq("aB", "a'b"))
        g.rule("aB", "'x'")
        g.rule("a'b", "'y'")
        mermaid = to_mermaid(build_graph(g.build()))

        assert "r0_a_b" in mermaid
        assert "r2_a_b" in mermaid
