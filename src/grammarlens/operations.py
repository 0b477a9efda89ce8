"""
One entry point per grammarlens capability.

Each operation accepts either a ``CompiledGrammar`` or the path of its
serialized JSON form, runs one analysis, and returns the analysis report.
Failures never escape as exceptions: they come back as a report with
``success=False`` and structured errors, which is what the CLI and any other
front end serialize.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any, TypeVar

from .analysis.ambiguity import AmbiguityProfiler
from .analysis.complexity import ComplexityAnalyzer
from .analysis.decisions import visualize_rule_decisions
from .analysis.left_recursion import LeftRecursionDetector
from .analysis.lookahead import LookaheadAnalyzer
from .analysis.rule_graph import build_graph
from .analysis.validation import ensure_valid, validate_grammar
from .core.config import GrammarLensConfig
from .core.errors import ErrorType, GrammarLensError
from .core.ir import (
    AmbiguityReport,
    AnalysisReport,
    CompiledGrammar,
    ComplexityMetrics,
    DecisionVisualization,
    FirstFollowReport,
    LeftRecursionReport,
    RuleGraph,
    StructuredError,
    ValidationResult,
)
from .core.loader import GrammarCache
from .runtime.protocols import ParseEngine
from .runtime.timeouts import ParseTimeoutManager

logger = logging.getLogger(__name__)

GrammarSource = CompiledGrammar | Path | str
R = TypeVar("R", bound=AnalysisReport)

_cache = GrammarCache()


def report_errors(report_type: type[R]) -> Callable[[Callable[..., R]], Callable[..., R]]:
    """
    Decorator that turns exceptions into a failed report of ``report_type``.

    grammarlens errors keep their error type and rule; anything else is
    reported as an internal error.
    """

    def decorator(fn: Callable[..., R]) -> Callable[..., R]:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> R:
            try:
                return fn(*args, **kwargs)
            except GrammarLensError as e:
                logger.debug("Operation %s failed: %s", fn.__name__, e, exc_info=True)
                return report_type(success=False, errors=[StructuredError.from_exception(e)])
            except Exception as e:
                logger.error("Operation %s failed unexpectedly: %s", fn.__name__, e, exc_info=True)
                error = StructuredError(type=ErrorType.INTERNAL_ERROR, message=str(e))
                return report_type(success=False, errors=[error])

        return wrapper

    return decorator


def configure(config: GrammarLensConfig) -> None:
    """Apply process-wide settings, currently the size of the loaded-grammar cache."""
    _cache.resize(config.cache.max_entries)


def grammar_cache() -> GrammarCache:
    return _cache


def resolve_grammar(source: GrammarSource) -> CompiledGrammar:
    """Return ``source`` itself, or the grammar loaded from its path."""
    if isinstance(source, CompiledGrammar):
        return source
    return _cache.load(Path(source))


def _valid_grammar(source: GrammarSource) -> CompiledGrammar:
    grammar = resolve_grammar(source)
    ensure_valid(grammar)
    return grammar


def _entry_rules(config: GrammarLensConfig | None) -> list[str] | None:
    if config is None or not config.analysis.entry_rules:
        return None
    return list(config.analysis.entry_rules)


# =============================================================================
# Operations
# =============================================================================


@report_errors(ValidationResult)
def validate(source: GrammarSource) -> ValidationResult:
    """Check a grammar for structural problems."""
    result = validate_grammar(resolve_grammar(source))
    for issue in result.fatal_issues:
        result.errors.append(StructuredError(type=ErrorType.INVALID_GRAMMAR, message=issue.message, rule=issue.rule))
    return result


@report_errors(RuleGraph)
def analyze_call_graph(source: GrammarSource, config: GrammarLensConfig | None = None) -> RuleGraph:
    return build_graph(_valid_grammar(source), _entry_rules(config))


@report_errors(LeftRecursionReport)
def analyze_left_recursion(source: GrammarSource, config: GrammarLensConfig | None = None) -> LeftRecursionReport:
    verify = config.analysis.verify_leftmost if config is not None else True
    return LeftRecursionDetector(_valid_grammar(source), verify_leftmost=verify).analyze()


@report_errors(ComplexityMetrics)
def analyze_complexity(source: GrammarSource, config: GrammarLensConfig | None = None) -> ComplexityMetrics:
    grammar = _valid_grammar(source)
    graph = build_graph(grammar, _entry_rules(config))
    return ComplexityAnalyzer(grammar, graph).analyze()


@report_errors(FirstFollowReport)
def analyze_first_follow(
    source: GrammarSource,
    rule_name: str | None = None,
    config: GrammarLensConfig | None = None,
) -> FirstFollowReport:
    """FIRST/FOLLOW sets and decision lookaheads, for one rule or all parser rules."""
    first_only = config.analysis.first_decision_only if config is not None else False
    analyzer = LookaheadAnalyzer(
        _valid_grammar(source),
        entry_rules=_entry_rules(config),
        first_decision_only=first_only,
    )
    return analyzer.analyze(rule_name)


@report_errors(DecisionVisualization)
def visualize_decisions(source: GrammarSource, rule_name: str) -> DecisionVisualization:
    return visualize_rule_decisions(_valid_grammar(source), rule_name)


@report_errors(AmbiguityReport)
def detect_ambiguity(
    source: GrammarSource,
    start_rule: str,
    samples: list[str],
    config: GrammarLensConfig | None = None,
    engine: ParseEngine | None = None,
) -> AmbiguityReport:
    """
    Profile ``samples`` parsed from ``start_rule``.

    Per-sample failures are recorded in the report's ``samples`` list and do
    not make the operation fail.
    """
    config = config if config is not None else GrammarLensConfig()
    profiler = AmbiguityProfiler(
        engine=engine,
        timeout_manager=ParseTimeoutManager(config.profiler.sample_timeout_seconds),
        max_workers=config.profiler.max_workers,
    )
    return profiler.detect(_valid_grammar(source), start_rule, samples)
