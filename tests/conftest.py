"""Shared pytest fixtures for grammarlens tests."""

from pathlib import Path

import pytest

from grammarlens.core import GrammarBuilder, alt, dump_grammar, empty, opt, pred, seq, star
from grammarlens.core.ir import CompiledGrammar


@pytest.fixture
def expr_grammar() -> CompiledGrammar:
    """expr: expr '+' term | term;  term: NUMBER;"""
    g = GrammarBuilder("Expr", entry_rules=["expr"])
    g.rule("expr", alt(seq("expr", "'+'", "term"), "term"), line=1)
    g.rule("term", "NUMBER", line=2)
    g.token("NUMBER", r"[0-9]+")
    g.token("WS", r"\s+", skip=True)
    return g.build()


@pytest.fixture
def loop_grammar() -> CompiledGrammar:
    """expr: term (('+'|'-') term)*;  term: NUMBER;"""
    g = GrammarBuilder("Loop", entry_rules=["expr"])
    g.rule("expr", seq("term", star(alt("'+'", "'-'"), "term")))
    g.rule("term", "NUMBER")
    g.token("NUMBER", r"[0-9]+")
    g.token("WS", r"\s+", skip=True)
    return g.build()


@pytest.fixture
def mutual_grammar() -> CompiledGrammar:
    """a: b;  b: a;"""
    g = GrammarBuilder("Mutual", entry_rules=["a"])
    g.rule("a", "b")
    g.rule("b", "a")
    return g.build()


@pytest.fixture
def unused_grammar() -> CompiledGrammar:
    """prog: stat+ style grammar with one rule nothing calls."""
    g = GrammarBuilder("Unused", entry_rules=["prog"])
    g.rule("prog", seq("stat", "';'"))
    g.rule("stat", "ID")
    g.rule("orphan", "NUMBER")
    g.token("ID", r"[a-z]+")
    g.token("NUMBER", r"[0-9]+")
    return g.build()


@pytest.fixture
def dangling_else_grammar() -> CompiledGrammar:
    """stat: 'if' ID 'then' stat ('else' stat)? | ID;"""
    g = GrammarBuilder("IfThenElse", entry_rules=["stat"])
    g.rule("stat", alt(seq("'if'", "ID", "'then'", "stat", opt("'else'", "stat")), "ID"))
    g.token("ID", r"[a-z]+")
    g.token("WS", r"\s+", skip=True)
    return g.build()


@pytest.fixture
def if_expr_grammar() -> CompiledGrammar:
    """stat: 'if' expr 'then' stat ('else' stat)? | ID;  expr: expr '+' ID | ID;"""
    g = GrammarBuilder("IfExpr", entry_rules=["stat"])
    g.rule("stat", alt(seq("'if'", "expr", "'then'", "stat", opt("'else'", "stat")), "ID"))
    g.rule("expr", alt(seq("expr", "'+'", "ID"), "ID"))
    g.token("ID", r"[a-z]+")
    g.token("WS", r"\s+", skip=True)
    return g.build()


@pytest.fixture
def if_alternatives_grammar() -> CompiledGrammar:
    """stat: 'if' expr 'then' stat 'else' stat | 'if' expr 'then' stat | ID;  expr: expr '+' ID | ID;"""
    g = GrammarBuilder("IfAlternatives", entry_rules=["stat"])
    g.rule(
        "stat",
        alt(
            seq("'if'", "expr", "'then'", "stat", "'else'", "stat"),
            seq("'if'", "expr", "'then'", "stat"),
            "ID",
        ),
    )
    g.rule("expr", alt(seq("expr", "'+'", "ID"), "ID"))
    g.token("ID", r"[a-z]+")
    g.token("WS", r"\s+", skip=True)
    return g.build()


@pytest.fixture
def precedence_grammar() -> CompiledGrammar:
    """Left recursion already rewritten into precedence-climbing loops."""
    g = GrammarBuilder("Prec", entry_rules=["expr"])
    g.rule(
        "expr",
        seq(
            "primary",
            star(
                alt(
                    seq(pred("precpred(_ctx, 2)"), "'*'", "primary"),
                    seq(pred("precpred(_ctx, 1)"), "'+'", "primary"),
                )
            ),
        ),
    )
    g.rule("primary", "NUMBER")
    g.token("NUMBER", r"[0-9]+")
    return g.build()


@pytest.fixture
def nullable_prefix_grammar() -> CompiledGrammar:
    """a: n a 'x' | 'y';  n: ;  (left recursive only through the empty rule n)"""
    g = GrammarBuilder("NullablePrefix", entry_rules=["a"])
    g.rule("a", alt(seq("n", "a", "'x'"), "'y'"))
    g.rule("n", empty())
    return g.build()


@pytest.fixture
def conflict_grammar() -> CompiledGrammar:
    """s: 'a' 'b' | 'a' 'c';"""
    g = GrammarBuilder("Conflict", entry_rules=["s"])
    g.rule("s", alt(seq("'a'", "'b'"), seq("'a'", "'c'")))
    return g.build()


@pytest.fixture
def disjoint_grammar() -> CompiledGrammar:
    """s: 'a' | 'b';"""
    g = GrammarBuilder("Disjoint", entry_rules=["s"])
    g.rule("s", alt("'a'", "'b'"))
    return g.build()


@pytest.fixture
def grammar_file(tmp_path: Path, dangling_else_grammar: CompiledGrammar) -> Path:
    """The dangling-else grammar serialized to a JSON file."""
    path = tmp_path / "IfThenElse.json"
    dump_grammar(dangling_else_grammar, path)
    return path
