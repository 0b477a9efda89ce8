"""
grammarlens - analysis engine for compiled grammar automata.

Static analyses (rule graph, left recursion, complexity, FIRST/FOLLOW,
decision reporting) and a sample-driven ambiguity profiler, all returning
structured reports.
"""

from __future__ import annotations

# Re-export commonly used types for convenience
from ._version import get_version
from .core import ir
from .core.errors import (
    AnalysisInternalError,
    GrammarLensError,
    InvalidGrammarError,
    RuleNotFoundError,
    SampleError,
    SampleTimeoutError,
    SampleTokenizeError,
)

__version__ = get_version()

__all__ = [
    "__version__",
    "ir",
    "GrammarLensError",
    "InvalidGrammarError",
    "RuleNotFoundError",
    "SampleError",
    "SampleTimeoutError",
    "SampleTokenizeError",
    "AnalysisInternalError",
]
