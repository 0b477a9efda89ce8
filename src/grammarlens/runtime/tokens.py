"""
Token stream types shared by tokenizers and parse engines.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ..core.ir.lookahead import EOF_LABEL


class Token(BaseModel):
    """
    One token of a sample.

    ``start``/``stop`` are character offsets (stop exclusive); ``line`` is
    1-indexed and ``column`` 0-indexed.
    """

    type: str
    text: str
    index: int
    start: int
    stop: int
    line: int
    column: int

    model_config = ConfigDict(frozen=True)

    @property
    def is_eof(self) -> bool:
        return self.type == EOF_LABEL


class TokenStream(BaseModel):
    """Tokens of one sample, always terminated by an EOF token."""

    source: str
    tokens: tuple[Token, ...]

    model_config = ConfigDict(frozen=True)

    def __len__(self) -> int:
        """Number of real tokens (EOF excluded)."""
        return len(self.tokens) - 1

    def __getitem__(self, index: int) -> Token:
        return self.tokens[index]

    @property
    def types(self) -> list[str]:
        return [t.type for t in self.tokens]

    def token_at(self, index: int) -> Token:
        """Token at ``index``, clamped to the EOF token."""
        return self.tokens[max(0, min(index, len(self.tokens) - 1))]

    def text_between(self, start_index: int, stop_index: int) -> str:
        """Source text covered by tokens ``start_index..stop_index`` (inclusive)."""
        if stop_index < start_index:
            return ""
        first = self.token_at(start_index)
        last = self.token_at(stop_index)
        return self.source[first.start : last.stop]
