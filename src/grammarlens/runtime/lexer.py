"""
Regex tokenizer for sample inputs.

Builds a longest-match scanner from a grammar's token vocabulary. On a tie
between candidates of equal length a literal token beats a pattern token
(so ``'if'`` wins over ``ID``), then declaration order decides. Tokens
marked ``skip`` are matched and dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..core.errors import make_invalid_grammar_error, make_tokenize_error
from ..core.ir import CompiledGrammar, TokenType
from ..core.ir.lookahead import EOF_LABEL
from .tokens import Token, TokenStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Matcher:
    token: TokenType
    regex: re.Pattern[str]
    priority: int


class Lexer:
    """Tokenizer for one compiled grammar; reusable across samples."""

    def __init__(self, grammar: CompiledGrammar):
        self.grammar = grammar
        self.matchers: list[_Matcher] = []
        for position, token in enumerate(grammar.tokens):
            pattern = re.escape(token.pattern) if token.is_literal else token.pattern
            try:
                regex = re.compile(pattern)
            except re.error as e:
                raise make_invalid_grammar_error(f"Token {token.name} has an invalid pattern {token.pattern!r}: {e}") from e
            self.matchers.append(_Matcher(token=token, regex=regex, priority=position))

    def _longest_match(self, text: str, pos: int) -> tuple[TokenType, int] | None:
        best: tuple[TokenType, int] | None = None
        best_key: tuple[int, int, int] | None = None
        for matcher in self.matchers:
            m = matcher.regex.match(text, pos)
            if m is None or m.end() == pos:
                continue
            length = m.end() - pos
            key = (length, 1 if matcher.token.is_literal else 0, -matcher.priority)
            if best_key is None or key > best_key:
                best_key = key
                best = (matcher.token, m.end())
        return best

    def tokenize(self, text: str, sample_index: int | None = None) -> TokenStream:
        """
        Split ``text`` into tokens.

        Raises:
            SampleTokenizeError: If no token type matches at some position
        """
        tokens: list[Token] = []
        pos = 0
        line = 1
        line_start = 0
        while pos < len(text):
            match = self._longest_match(text, pos)
            if match is None:
                column = pos - line_start
                raise make_tokenize_error(
                    f"No token matches input at {line}:{column}: {text[pos:pos + 10]!r}",
                    sample_index,
                    line,
                    column,
                )
            token_type, end = match
            if not token_type.skip:
                tokens.append(
                    Token(
                        type=token_type.name,
                        text=text[pos:end],
                        index=len(tokens),
                        start=pos,
                        stop=end,
                        line=line,
                        column=pos - line_start,
                    )
                )
            newlines = text.count("\n", pos, end)
            if newlines:
                line += newlines
                line_start = text.rfind("\n", pos, end) + 1
            pos = end

        tokens.append(
            Token(
                type=EOF_LABEL,
                text="<EOF>",
                index=len(tokens),
                start=len(text),
                stop=len(text),
                line=line,
                column=len(text) - line_start,
            )
        )
        logger.debug("Tokenized %d characters into %d tokens", len(text), len(tokens) - 1)
        return TokenStream(source=text, tokens=tuple(tokens))


def tokenize(grammar: CompiledGrammar, text: str) -> TokenStream:
    return Lexer(grammar).tokenize(text)
