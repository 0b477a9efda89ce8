"""
Sample-driven ambiguity profiling.

Static lookahead analysis can only say that two alternatives *might* be
confused. The profiler parses real sample inputs through a ``ParseEngine``
and collects the ambiguities the parses actually hit, together with
per-decision prediction statistics and rule coverage.

Samples run concurrently; each one has its own timeout and its own failure
record, so one pathological input never costs the results of the others.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from ..core.errors import (
    ErrorType,
    GrammarLensError,
    InvalidGrammarError,
    SampleTokenizeError,
)
from ..core.ir import (
    Ambiguity,
    AmbiguityEvent,
    AmbiguityReport,
    CompiledGrammar,
    CoverageInfo,
    DecisionProfile,
    SampleResult,
    StructuredError,
)
from ..runtime.protocols import ParseEngine, ParseExecution, ParseOutcome
from ..runtime.timeouts import DEFAULT_TIMEOUT_SECONDS, ParseTimeoutManager
from ..runtime.tokens import TokenStream
from .traversal import owning_rule, reachable_states

logger = logging.getLogger(__name__)

UNKNOWN_RULE = "unknown"

SUGGESTED_FIX = (
    "Consider:\n"
    "1. Reordering alternatives to resolve ambiguity\n"
    "2. Adding semantic predicates to disambiguate\n"
    "3. Using precedence for operator expressions\n"
    "4. Factoring common prefixes if possible"
)


def explain(rule_name: str, alternatives: list[int], input_text: str | None, exact: bool = True) -> str:
    """Human-readable description of one ambiguity."""
    if not alternatives:
        return f"Ambiguity detected in rule {rule_name}"
    text = f"In rule '{rule_name}', alternatives {alternatives} are ambiguous"
    if input_text:
        text += f' for input: "{input_text}"'
    if not exact:
        text += " (suspected: found on the viable prefix of a rejected sample)"
    return text


@dataclass
class _SampleRun:
    index: int
    elapsed_ms: float
    execution: ParseExecution | None = None
    tokens: TokenStream | None = None
    error: StructuredError | None = None


class AmbiguityProfiler:
    """
    Runs samples through a parse engine and aggregates what they reveal.

    Args:
        engine: Parse engine; defaults to the bundled ``InterpreterEngine``
        timeout_manager: Per-sample timeout runner
        max_workers: Samples parsed concurrently
    """

    def __init__(
        self,
        engine: ParseEngine | None = None,
        timeout_manager: ParseTimeoutManager | None = None,
        max_workers: int = 4,
    ):
        if engine is None:
            # runtime.interpreter imports this package
            from ..runtime.interpreter import InterpreterEngine

            engine = InterpreterEngine()
        self.engine: ParseEngine = engine
        self.timeout_manager = timeout_manager if timeout_manager is not None else ParseTimeoutManager()
        self.max_workers = max(1, max_workers)

    # -- per sample -----------------------------------------------------------

    def _parse(
        self, grammar: CompiledGrammar, rule_index: int, index: int, text: str, cancel: threading.Event
    ) -> tuple[ParseExecution, TokenStream]:
        try:
            tokens = self.engine.tokenize(grammar, text)
        except SampleTokenizeError as e:
            if e.context is not None and e.context.sample_index is None:
                e.context.sample_index = index
            raise
        execution = self.engine.instrumented_parse(grammar, rule_index, tokens, cancel)
        return execution, tokens

    def _run_sample(
        self, grammar: CompiledGrammar, rule_index: int, index: int, text: str, timeout: float
    ) -> _SampleRun:
        started = time.perf_counter()
        try:
            execution, tokens = self.timeout_manager.execute_with_timeout(
                lambda cancel: self._parse(grammar, rule_index, index, text, cancel),
                timeout,
                sample_index=index,
            )
        except InvalidGrammarError:
            raise
        except GrammarLensError as e:
            logger.warning("Skipping sample %d: %s", index, e.message)
            return _SampleRun(
                index=index,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                error=StructuredError.from_exception(e),
            )
        except Exception as e:
            logger.warning("Skipping sample %d: unexpected error: %s", index, e, exc_info=True)
            return _SampleRun(
                index=index,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                error=StructuredError(type=ErrorType.INTERNAL_ERROR, message=str(e)),
            )

        elapsed = (time.perf_counter() - started) * 1000
        logger.debug(
            "Parsed sample %d: %s, %d ambiguity event(s)", index, execution.outcome.value, len(execution.events)
        )
        return _SampleRun(index=index, elapsed_ms=elapsed, execution=execution, tokens=tokens)

    # -- aggregation ----------------------------------------------------------

    def _to_ambiguity(
        self,
        event: AmbiguityEvent,
        rule_name: str,
        sample_index: int,
        tokens: TokenStream,
    ) -> Ambiguity:
        start_token = tokens.token_at(event.token_start_index)
        input_text = tokens.text_between(event.token_start_index, event.token_stop_index)
        alternatives = list(event.conflicting_alternatives)
        return Ambiguity(
            rule_name=rule_name,
            decision=event.decision_id,
            conflicting_alternatives=alternatives,
            sample_index=sample_index,
            start_index=event.token_start_index,
            stop_index=event.token_stop_index,
            line=start_token.line,
            column=start_token.column,
            input_text=input_text or None,
            is_full_context=event.is_exact_context,
            explanation=explain(rule_name, alternatives, input_text, event.is_exact_context),
            suggested_fix=SUGGESTED_FIX,
        )

    def detect(
        self,
        grammar: CompiledGrammar,
        start_rule: str,
        samples: list[str],
        per_sample_timeout: float | None = None,
    ) -> AmbiguityReport:
        """
        Parse every sample from ``start_rule`` and report the ambiguities hit.

        Raises:
            RuleNotFoundError: If ``start_rule`` is not declared
            InvalidGrammarError: If the grammar's vocabulary cannot be compiled
        """
        rule_index = grammar.rule_index(start_rule)
        logger.info("Detecting ambiguities with %d samples for rule: %s", len(samples), start_rule)
        if not samples:
            logger.warning("No sample inputs provided, returning empty report")
            return AmbiguityReport.empty(start_rule, len(grammar.rules))

        timeout = per_sample_timeout if per_sample_timeout is not None else self.timeout_manager.default_timeout
        if timeout <= 0:
            timeout = DEFAULT_TIMEOUT_SECONDS

        runs: list[_SampleRun] = []
        workers = min(self.max_workers, len(samples))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="grammarlens-sample") as pool:
            futures = [
                pool.submit(self._run_sample, grammar, rule_index, i, text, timeout) for i, text in enumerate(samples)
            ]
            for future in as_completed(futures):
                runs.append(future.result())
        runs.sort(key=lambda r: r.index)

        report = self._aggregate(grammar, start_rule, runs)
        logger.info(
            "Ambiguity detection complete: %d ambiguities in %d rules from %d samples (%d failed)",
            report.ambiguity_count,
            report.affected_rule_count,
            report.total_samples_parsed,
            report.samples_failed,
        )
        return report

    def _aggregate(self, grammar: CompiledGrammar, start_rule: str, runs: list[_SampleRun]) -> AmbiguityReport:
        names = grammar.rule_names
        reachable = {r.index: reachable_states(grammar, r.index) for r in grammar.rules}
        decision_state = {dp.decision_id: dp.state_id for dp in grammar.decision_points()}

        def attribute(decision_id: int, fallback: str) -> str:
            state = decision_state.get(decision_id)
            owner = owning_rule(grammar, state, reachable) if state is not None else None
            if owner is not None:
                return names[owner]
            return fallback or UNKNOWN_RULE

        ambiguities: list[Ambiguity] = []
        samples: list[SampleResult] = []
        profiles: dict[int, DecisionProfile] = {}
        visited_rules: set[int] = set()
        visited_alts: dict[int, set[int]] = {}
        parsed = failed = 0
        total_ms = 0.0

        for run in runs:
            execution = run.execution
            if execution is None or run.tokens is None:
                failed += 1
                samples.append(
                    SampleResult(
                        sample_index=run.index, outcome="error", parse_time_ms=round(run.elapsed_ms, 3), error=run.error
                    )
                )
                continue

            error = None
            if execution.error_message is not None:
                error = StructuredError(type=ErrorType.PARSE_ERROR, message=execution.error_message)
            if execution.outcome == ParseOutcome.FAILED_FATAL:
                failed += 1
                samples.append(
                    SampleResult(
                        sample_index=run.index,
                        outcome=execution.outcome.value,
                        token_count=execution.token_count,
                        parse_time_ms=round(run.elapsed_ms, 3),
                        error=error,
                    )
                )
                continue

            parsed += 1
            total_ms += run.elapsed_ms
            sample_ambiguities = [
                self._to_ambiguity(event, attribute(event.decision_id, event.rule_name), run.index, run.tokens)
                for event in execution.events
            ]
            ambiguities.extend(sample_ambiguities)
            samples.append(
                SampleResult(
                    sample_index=run.index,
                    outcome=execution.outcome.value,
                    token_count=execution.token_count,
                    ambiguity_count=len(sample_ambiguities),
                    parse_time_ms=round(run.elapsed_ms, 3),
                    error=error,
                )
            )

            for stats in execution.decisions:
                profile = profiles.get(stats.decision_id)
                if profile is None:
                    profile = DecisionProfile(decision=stats.decision_id, rule_name=attribute(stats.decision_id, ""))
                    profiles[stats.decision_id] = profile
                profile.invocations += stats.invocations
                profile.sll_total_look += stats.total_lookahead
                profile.sll_max_look = max(profile.sll_max_look, stats.max_lookahead)
                profile.ll_fallback += stats.ll_fallback
            for amb in sample_ambiguities:
                if amb.decision in profiles:
                    profiles[amb.decision].ambiguities += 1

            visited_rules.update(execution.visited_rules)
            for rule, alts in execution.visited_alternatives.items():
                visited_alts.setdefault(rule, set()).update(alts)

        ambiguities.sort(key=lambda a: (a.rule_name, a.decision, a.sample_index, a.start_index))
        per_rule: dict[str, int] = {}
        for amb in ambiguities:
            per_rule[amb.rule_name] = per_rule.get(amb.rule_name, 0) + 1

        coverage = CoverageInfo(
            visited_rules=[names[i] for i in sorted(visited_rules) if 0 <= i < len(names)],
            visited_alternatives={
                names[i]: sorted(alts) for i, alts in sorted(visited_alts.items()) if 0 <= i < len(names)
            },
            rules_declared=len(grammar.rules),
        )

        return AmbiguityReport(
            start_rule=start_rule,
            has_ambiguities=bool(ambiguities),
            ambiguities=ambiguities,
            ambiguities_per_rule=dict(sorted(per_rule.items())),
            total_samples=len(runs),
            total_samples_parsed=parsed,
            samples_failed=failed,
            samples=samples,
            decision_profiles=sorted(profiles.values(), key=lambda p: (p.rule_name, p.decision)),
            coverage=coverage,
            total_parse_time_ms=round(total_ms, 3),
        )


def detect_ambiguities(
    grammar: CompiledGrammar,
    start_rule: str,
    samples: list[str],
    per_sample_timeout: float | None = None,
    engine: ParseEngine | None = None,
    max_workers: int = 4,
) -> AmbiguityReport:
    profiler = AmbiguityProfiler(engine=engine, max_workers=max_workers)
    return profiler.detect(grammar, start_rule, samples, per_sample_timeout)
