"""
grammarlens Internal Representation.

Immutable grammar/automaton inputs and the report types produced by the
analyses. Import from this package rather than the submodules:

    from grammarlens.core import ir

    grammar: ir.CompiledGrammar
"""

from .ambiguity import (
    Ambiguity,
    AmbiguityEvent,
    AmbiguityReport,
    CoverageInfo,
    DecisionProfile,
    SampleResult,
)
from .automaton import (
    Automaton,
    AutomatonState,
    AutomatonStats,
    DecisionPoint,
    StateKind,
    Transition,
    TransitionKind,
)
from .grammar import CompiledGrammar, Rule, RuleKind, TokenType
from .lookahead import DYNAMIC_LABEL, EOF_LABEL, EPSILON_LABEL, LookaheadSet
from .reports import (
    AlternativeLookahead,
    AnalysisReport,
    ComplexityMetrics,
    DecisionAnalysis,
    DecisionDetail,
    DecisionGraphEdge,
    DecisionGraphNode,
    DecisionVisualization,
    FirstFollowReport,
    IndirectLeftRecursion,
    LeftRecursionReport,
    LeftRecursiveRule,
    RuleAnalysis,
    RuleComplexity,
    RuleCycle,
    RuleGraph,
    RuleGraphEdge,
    RuleNode,
    StructuredError,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Automaton
    "Automaton",
    "AutomatonState",
    "AutomatonStats",
    "DecisionPoint",
    "StateKind",
    "Transition",
    "TransitionKind",
    # Grammar
    "CompiledGrammar",
    "Rule",
    "RuleKind",
    "TokenType",
    # Lookahead
    "LookaheadSet",
    "EPSILON_LABEL",
    "EOF_LABEL",
    "DYNAMIC_LABEL",
    # Reports
    "AnalysisReport",
    "StructuredError",
    "ValidationIssue",
    "ValidationResult",
    "RuleNode",
    "RuleGraphEdge",
    "RuleCycle",
    "RuleGraph",
    "LeftRecursiveRule",
    "IndirectLeftRecursion",
    "LeftRecursionReport",
    "RuleComplexity",
    "ComplexityMetrics",
    "AlternativeLookahead",
    "DecisionAnalysis",
    "RuleAnalysis",
    "FirstFollowReport",
    "DecisionGraphNode",
    "DecisionGraphEdge",
    "DecisionDetail",
    "DecisionVisualization",
    # Ambiguity profiling
    "AmbiguityEvent",
    "Ambiguity",
    "CoverageInfo",
    "DecisionProfile",
    "SampleResult",
    "AmbiguityReport",
]
