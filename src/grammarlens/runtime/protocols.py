"""
Contract between the ambiguity profiler and a parse engine.

The profiler never parses anything itself. It hands each sample to a
``ParseEngine``, which tokenizes it, runs an instrumented parse of the
requested rule and reports what happened at every decision.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from ..core.ir import AmbiguityEvent, CompiledGrammar
from .tokens import TokenStream


class ParseOutcome(str, Enum):
    """How a sample parse ended."""

    SUCCEEDED = "succeeded"
    FAILED_RECOVERABLE = "failed_recoverable"  # syntax error after a viable prefix
    FAILED_FATAL = "failed_fatal"  # nothing of the input could be parsed


class DecisionStatistics(BaseModel):
    """Prediction counters for one decision during one parse."""

    decision_id: int
    invocations: int = 0
    total_lookahead: int = 0
    max_lookahead: int = 0
    ll_fallback: int = 0


class ParseExecution(BaseModel):
    """
    Everything an instrumented parse observed.

    ``visited_rules`` holds rule indices; ``visited_alternatives`` maps rule
    index to the 1-based alternatives taken at that rule's outermost
    decision.
    """

    outcome: ParseOutcome
    token_count: int = 0
    decisions: list[DecisionStatistics] = Field(default_factory=list)
    events: list[AmbiguityEvent] = Field(default_factory=list)
    visited_rules: list[int] = Field(default_factory=list)
    visited_alternatives: dict[int, list[int]] = Field(default_factory=dict)
    error_message: str | None = None
    error_token_index: int | None = None


class ParseCancelled(Exception):
    """Raised inside an engine when the caller's cancel event is set."""


@runtime_checkable
class ParseEngine(Protocol):
    """Tokenizes samples and runs instrumented parses over a compiled grammar."""

    def tokenize(self, grammar: CompiledGrammar, text: str) -> TokenStream:
        """Split ``text`` into tokens; raises ``SampleTokenizeError``."""
        ...

    def instrumented_parse(
        self,
        grammar: CompiledGrammar,
        rule_index: int,
        tokens: TokenStream,
        cancel: threading.Event,
    ) -> ParseExecution:
        """
        Parse ``tokens`` starting at ``rule_index``.

        Implementations check ``cancel`` periodically and raise
        ``ParseCancelled`` once it is set.
        """
        ...
