"""
Lookahead set type for grammarlens IR.

A ``LookaheadSet`` is an ordered set of token names plus two sentinels:
``epsilon`` (the derivation can be empty) and ``eof`` (end of input may
follow). The ``dynamic`` flag replaces the whole set when an alternative is
guarded by a runtime predicate whose outcome cannot be decided statically.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

EPSILON_LABEL = "ε"
EOF_LABEL = "EOF"
DYNAMIC_LABEL = "<predicate>"


class LookaheadSet(BaseModel):
    """Immutable lookahead set; tokens are kept sorted for stable output."""

    tokens: tuple[str, ...] = ()
    epsilon: bool = False
    eof: bool = False
    dynamic: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, tokens: Iterable[str], epsilon: bool = False, eof: bool = False) -> LookaheadSet:
        names = set(tokens)
        if EOF_LABEL in names:
            names.discard(EOF_LABEL)
            eof = True
        return cls(tokens=tuple(sorted(names)), epsilon=epsilon, eof=eof)

    @classmethod
    def make_dynamic(cls) -> LookaheadSet:
        return cls(dynamic=True)

    def __contains__(self, token: object) -> bool:
        if token == EOF_LABEL:
            return self.eof
        return token in self.tokens

    def __len__(self) -> int:
        return len(self.tokens) + (1 if self.eof else 0)

    @property
    def is_empty(self) -> bool:
        return not self.tokens and not self.eof and not self.epsilon and not self.dynamic

    def union(self, other: LookaheadSet) -> LookaheadSet:
        if self.dynamic or other.dynamic:
            return LookaheadSet.make_dynamic()
        return LookaheadSet.of(
            set(self.tokens) | set(other.tokens),
            epsilon=self.epsilon or other.epsilon,
            eof=self.eof or other.eof,
        )

    def without_epsilon(self) -> LookaheadSet:
        return self.model_copy(update={"epsilon": False})

    def intersection(self, other: LookaheadSet) -> LookaheadSet:
        """
        Tokens present in both sets.

        Dynamic sets never intersect anything and ``epsilon`` is not a token,
        so neither contributes to the result.
        """
        if self.dynamic or other.dynamic:
            return LookaheadSet()
        return LookaheadSet.of(set(self.tokens) & set(other.tokens), eof=self.eof and other.eof)

    def overlaps(self, other: LookaheadSet) -> bool:
        return len(self.intersection(other)) > 0

    def issuperset(self, other: LookaheadSet) -> bool:
        if self.dynamic or other.dynamic:
            return self.dynamic == other.dynamic
        return set(other.tokens) <= set(self.tokens) and (self.eof or not other.eof)

    def display(self) -> list[str]:
        """Token names for reports, sentinels last."""
        if self.dynamic:
            return [DYNAMIC_LABEL]
        names = list(self.tokens)
        if self.eof:
            names.append(EOF_LABEL)
        if self.epsilon:
            names.append(EPSILON_LABEL)
        return names
