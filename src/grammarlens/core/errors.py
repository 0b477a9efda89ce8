"""
Error types for grammarlens loading, analysis, and sample profiling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    """Stable error codes for structured error responses."""

    INVALID_GRAMMAR = "invalid_grammar"
    RULE_NOT_FOUND = "rule_not_found"
    PARSE_TIMEOUT = "parse_timeout"
    TOKENIZE_ERROR = "tokenize_error"
    PARSE_ERROR = "parse_error"
    INVALID_INPUT = "invalid_input"
    INTERNAL_ERROR = "internal_error"

    @property
    def description(self) -> str:
        return _ERROR_DESCRIPTIONS[self]


_ERROR_DESCRIPTIONS = {
    ErrorType.INVALID_GRAMMAR: "Grammar declaration is malformed or has unresolved references",
    ErrorType.RULE_NOT_FOUND: "Rule not defined",
    ErrorType.PARSE_TIMEOUT: "Parsing timeout exceeded",
    ErrorType.TOKENIZE_ERROR: "Sample input could not be tokenized",
    ErrorType.PARSE_ERROR: "Sample input parsing failed",
    ErrorType.INVALID_INPUT: "Invalid input provided",
    ErrorType.INTERNAL_ERROR: "Internal processing error",
}


class GrammarLensError(Exception):
    """Base exception for all grammarlens errors."""

    error_type = ErrorType.INTERNAL_ERROR

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            location = self.context.format()
            if location:
                return f"{location}: {self.message}"
        return self.message


class InvalidGrammarError(GrammarLensError):
    """
    Raised when a compiled grammar cannot be analyzed at all.

    Examples:
    - Duplicate rule names
    - Rule call to an undeclared rule
    - Terminal referencing a token missing from the vocabulary
    - Malformed serialized grammar
    """

    error_type = ErrorType.INVALID_GRAMMAR


class RuleNotFoundError(GrammarLensError):
    """Raised when a requested rule is absent from the rule table."""

    error_type = ErrorType.RULE_NOT_FOUND

    def __init__(self, rule_name: str):
        self.rule_name = rule_name
        super().__init__(f"Rule not found: {rule_name}", ErrorContext(rule=rule_name))


class SampleError(GrammarLensError):
    """
    Base for failures confined to a single sample input.

    Sample errors are recoverable: the profiler records them and moves on
    to the next sample.
    """

    error_type = ErrorType.PARSE_ERROR


class SampleTimeoutError(SampleError):
    """Raised when one sample exceeds its parse budget."""

    error_type = ErrorType.PARSE_TIMEOUT


class SampleTokenizeError(SampleError):
    """Raised when a sample contains characters no token type matches."""

    error_type = ErrorType.TOKENIZE_ERROR


class AnalysisInternalError(GrammarLensError):
    """
    Raised when a traversal meets a structurally invalid automaton reference.

    This signals a contract violation by whatever produced the automaton,
    not a problem with user input.
    """

    error_type = ErrorType.INTERNAL_ERROR


@dataclass
class ErrorContext:
    """
    Location information attached to an error.

    Attributes:
        rule: Rule name the error concerns
        state: Automaton state id
        sample_index: Index of the sample input (profiler errors)
        line: Line number in the sample (1-indexed)
        column: Column number in the sample (0-indexed, token convention)
    """

    rule: str | None = None
    state: int | None = None
    sample_index: int | None = None
    line: int | None = None
    column: int | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Formatted string like: "rule expr, state 12" or "sample 3 at 1:4"
        """
        parts = []
        if self.rule is not None:
            parts.append(f"rule {self.rule}")
        if self.state is not None:
            parts.append(f"state {self.state}")
        if self.sample_index is not None:
            location = f"sample {self.sample_index}"
            if self.line is not None and self.column is not None:
                location += f" at {self.line}:{self.column}"
            parts.append(location)
        return ", ".join(parts)


def make_internal_error(message: str, state: int | None = None, rule: str | None = None) -> AnalysisInternalError:
    """
    Helper to create an AnalysisInternalError with optional context.

    Args:
        message: Error description
        state: Optional offending state id
        rule: Optional rule name

    Returns:
        AnalysisInternalError with context if a location was provided
    """
    if state is None and rule is None:
        return AnalysisInternalError(message)
    return AnalysisInternalError(message, ErrorContext(rule=rule, state=state))


def make_invalid_grammar_error(message: str, rule: str | None = None) -> InvalidGrammarError:
    """Helper to create an InvalidGrammarError, optionally naming the rule."""
    if rule is None:
        return InvalidGrammarError(message)
    return InvalidGrammarError(message, ErrorContext(rule=rule))


def make_tokenize_error(
    message: str,
    sample_index: int | None,
    line: int,
    column: int,
) -> SampleTokenizeError:
    """
    Helper to create a SampleTokenizeError with a sample location.

    Args:
        message: Error description
        sample_index: Index of the sample being tokenized, if known
        line: Line number (1-indexed)
        column: Column number (0-indexed)

    Returns:
        SampleTokenizeError with context attached
    """
    context = ErrorContext(sample_index=sample_index, line=line, column=column)
    return SampleTokenizeError(message, context)
