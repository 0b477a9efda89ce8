"""
Static grammar analyses and the sample-driven ambiguity profiler.

Every analysis takes a ``CompiledGrammar`` and returns a report model from
``grammarlens.core.ir``.
"""

from .ambiguity import AmbiguityProfiler, detect_ambiguities
from .complexity import ComplexityAnalyzer, analyze_complexity
from .decisions import decision_to_dot, visualize_rule_decisions
from .left_recursion import LeftRecursionDetector, analyze_left_recursion
from .lookahead import LookaheadAnalyzer, analyze_first_follow
from .rule_graph import build_graph, to_dot, to_mermaid
from .validation import ensure_valid, validate_grammar

__all__ = [
    # Rule graph
    "build_graph",
    "to_dot",
    "to_mermaid",
    # Left recursion
    "LeftRecursionDetector",
    "analyze_left_recursion",
    # Complexity
    "ComplexityAnalyzer",
    "analyze_complexity",
    # FIRST / FOLLOW
    "LookaheadAnalyzer",
    "analyze_first_follow",
    # Decisions
    "visualize_rule_decisions",
    "decision_to_dot",
    # Validation
    "validate_grammar",
    "ensure_valid",
    # Ambiguity
    "AmbiguityProfiler",
    "detect_ambiguities",
]
