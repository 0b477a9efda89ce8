"""Tokenizing, parsing and timeout support for the ambiguity profiler."""

from .interpreter import InterpreterEngine
from .lexer import Lexer, tokenize
from .protocols import DecisionStatistics, ParseCancelled, ParseEngine, ParseExecution, ParseOutcome
from .timeouts import DEFAULT_TIMEOUT_SECONDS, ParseTimeoutManager
from .tokens import Token, TokenStream

__all__ = [
    "InterpreterEngine",
    "Lexer",
    "tokenize",
    "ParseEngine",
    "ParseExecution",
    "ParseOutcome",
    "DecisionStatistics",
    "ParseCancelled",
    "ParseTimeoutManager",
    "DEFAULT_TIMEOUT_SECONDS",
    "Token",
    "TokenStream",
]
