"""
Grammar-level types for grammarlens IR.

A ``CompiledGrammar`` bundles everything an external grammar compiler hands
to the analysis engine: the rule table, the automaton, and the token
vocabulary used to tokenize sample inputs.
"""

from __future__ import annotations

import hashlib
from enum import Enum

from pydantic import BaseModel, ConfigDict

from ..errors import RuleNotFoundError, make_internal_error
from .automaton import Automaton, DecisionPoint


class RuleKind(str, Enum):
    """Rule categories, following the usual parser/lexer split."""

    PARSER = "parser"
    LEXER = "lexer"
    FRAGMENT = "fragment"


class Rule(BaseModel):
    """
    A grammar rule as declared by the compiler.

    ``start_state`` and ``stop_state`` are automaton state ids.
    """

    index: int
    name: str
    kind: RuleKind = RuleKind.PARSER
    alternative_count: int = 1
    start_state: int
    stop_state: int
    line: int | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_parser_rule(self) -> bool:
        return self.kind == RuleKind.PARSER


class TokenType(BaseModel):
    """
    A token in the grammar vocabulary.

    Literal tokens are named with their quoted text (``'+'``) and match that
    text exactly. Named tokens (``NUMBER``) match ``pattern`` as a regular
    expression. Tokens with ``skip`` set are dropped by the tokenizer.
    """

    name: str
    pattern: str
    is_literal: bool = False
    skip: bool = False

    model_config = ConfigDict(frozen=True)


class CompiledGrammar(BaseModel):
    """
    Immutable (rule table, automaton, vocabulary) triple.

    Attributes:
        name: Grammar name
        rules: Rule table, ``rules[i].index == i``
        automaton: State machine for every rule
        tokens: Token vocabulary in priority order
        entry_rules: Rules designated as parse entry points
    """

    name: str
    rules: tuple[Rule, ...] = ()
    automaton: Automaton = Automaton()
    tokens: tuple[TokenType, ...] = ()
    entry_rules: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def rule_names(self) -> list[str]:
        return [r.name for r in self.rules]

    def has_rule(self, name: str) -> bool:
        return any(r.name == name for r in self.rules)

    def rule_index(self, name: str) -> int:
        """Look up a rule index by name, raising ``RuleNotFoundError``."""
        for r in self.rules:
            if r.name == name:
                return r.index
        raise RuleNotFoundError(name)

    def rule(self, name: str) -> Rule:
        return self.rules[self.rule_index(name)]

    def rule_at(self, index: int) -> Rule:
        if not 0 <= index < len(self.rules):
            raise make_internal_error(f"Reference to non-existent rule {index}")
        return self.rules[index]

    def parser_rules(self) -> list[Rule]:
        return [r for r in self.rules if r.kind == RuleKind.PARSER]

    def decision_points(self) -> list[DecisionPoint]:
        return self.automaton.decision_points()

    def default_entry_rules(self) -> list[str]:
        """
        Entry points used when the caller names none.

        Declared entry rules win; otherwise the first parser rule, which is
        where a combined grammar conventionally starts.
        """
        if self.entry_rules:
            return list(self.entry_rules)
        for r in self.rules:
            if r.kind == RuleKind.PARSER:
                return [r.name]
        return []

    def token(self, name: str) -> TokenType | None:
        for tok in self.tokens:
            if tok.name == name:
                return tok
        return None

    def fingerprint(self) -> str:
        """Content hash identifying this grammar, stable across processes."""
        payload = self.model_dump_json().encode("utf-8")
        return hashlib.sha256(payload).hexdigest()
