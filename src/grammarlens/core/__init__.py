"""Core grammarlens functionality: IR, errors, configuration, grammar construction and loading."""

from . import ir
from .builder import GrammarBuilder, alt, empty, opt, plus, pred, ref, seq, star, tok
from .config import AnalysisConfig, CacheConfig, GrammarLensConfig, LoggingConfig, ProfilerConfig, load_config
from .errors import (
    AnalysisInternalError,
    ErrorContext,
    ErrorType,
    GrammarLensError,
    InvalidGrammarError,
    RuleNotFoundError,
    SampleError,
    SampleTimeoutError,
    SampleTokenizeError,
)
from .loader import GrammarCache, dump_grammar, load_grammar

__all__ = [
    "ir",
    "GrammarBuilder",
    "alt",
    "empty",
    "opt",
    "plus",
    "pred",
    "ref",
    "seq",
    "star",
    "tok",
    "GrammarLensConfig",
    "AnalysisConfig",
    "ProfilerConfig",
    "CacheConfig",
    "LoggingConfig",
    "load_config",
    "ErrorContext",
    "ErrorType",
    "GrammarLensError",
    "InvalidGrammarError",
    "RuleNotFoundError",
    "SampleError",
    "SampleTimeoutError",
    "SampleTokenizeError",
    "AnalysisInternalError",
    "GrammarCache",
    "load_grammar",
    "dump_grammar",
]
