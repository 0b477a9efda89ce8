"""
Ambiguity profiling types for grammarlens IR.

``AmbiguityEvent`` is what a parse engine emits while parsing one sample.
The profiler turns events into ``Ambiguity`` entries (with rule attribution,
source positions and explanations) and aggregates them into an
``AmbiguityReport``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .reports import AnalysisReport, StructuredError


class AmbiguityEvent(BaseModel):
    """
    A tie between alternatives observed at one decision during one parse.

    ``is_exact_context`` is True when the tie was proven with the full
    parse context, False when it was only suspected on a bounded context
    (for example the viable prefix of a rejected sample).
    """

    decision_id: int
    rule_name: str = ""
    conflicting_alternatives: tuple[int, ...]
    token_start_index: int
    token_stop_index: int
    is_exact_context: bool = True

    model_config = ConfigDict(frozen=True)


class Ambiguity(BaseModel):
    """An ambiguity attributed to a rule and located in a sample."""

    rule_name: str
    decision: int
    conflicting_alternatives: list[int]
    sample_index: int
    start_index: int
    stop_index: int
    line: int | None = None
    column: int | None = None
    input_text: str | None = None
    is_full_context: bool = True
    explanation: str = ""
    suggested_fix: str = ""


class CoverageInfo(BaseModel):
    """Which rules and alternatives the samples exercised."""

    visited_rules: list[str] = Field(default_factory=list)
    visited_alternatives: dict[str, list[int]] = Field(default_factory=dict)
    rules_declared: int = 0

    @property
    def rule_coverage_count(self) -> int:
        return len(self.visited_rules)

    @property
    def alternative_coverage_count(self) -> int:
        return sum(len(alts) for alts in self.visited_alternatives.values())

    @property
    def coverage_ratio(self) -> float:
        if self.rules_declared == 0:
            return 0.0
        return round(len(self.visited_rules) / self.rules_declared, 4)

    def was_rule_visited(self, rule_name: str) -> bool:
        return rule_name in self.visited_rules


class DecisionProfile(BaseModel):
    """Prediction statistics for one decision, summed over all samples."""

    decision: int
    rule_name: str
    invocations: int = 0
    sll_total_look: int = 0
    sll_max_look: int = 0
    ll_fallback: int = 0
    ambiguities: int = 0


class SampleResult(BaseModel):
    """Outcome of one sample parse."""

    sample_index: int
    outcome: str
    token_count: int = 0
    ambiguity_count: int = 0
    parse_time_ms: float = 0.0
    error: StructuredError | None = None


class AmbiguityReport(AnalysisReport):
    """
    Aggregated result of profiling a grammar over sample inputs.

    Ordering: ``ambiguities`` by (rule name, decision, sample index, start
    index); ``ambiguities_per_rule`` and ``decision_profiles`` by rule name
    then decision; ``samples`` by sample index.
    """

    start_rule: str = ""
    has_ambiguities: bool = False
    ambiguities: list[Ambiguity] = Field(default_factory=list)
    ambiguities_per_rule: dict[str, int] = Field(default_factory=dict)
    total_samples: int = 0
    total_samples_parsed: int = 0
    samples_failed: int = 0
    samples: list[SampleResult] = Field(default_factory=list)
    decision_profiles: list[DecisionProfile] = Field(default_factory=list)
    coverage: CoverageInfo = Field(default_factory=CoverageInfo)
    total_parse_time_ms: float = 0.0

    @property
    def ambiguity_count(self) -> int:
        return len(self.ambiguities)

    @property
    def affected_rule_count(self) -> int:
        return len(self.ambiguities_per_rule)

    def has_ambiguity_in_rule(self, rule_name: str) -> bool:
        return any(a.rule_name == rule_name for a in self.ambiguities)

    def canonical_json(self) -> str:
        """
        Serialize without wall-clock fields.

        Two runs over the same grammar and samples produce identical output.
        """
        return self.model_dump_json(
            indent=2,
            exclude={"total_parse_time_ms": True, "samples": {"__all__": {"parse_time_ms"}}},
        )

    @classmethod
    def empty(cls, start_rule: str, rules_declared: int) -> AmbiguityReport:
        return cls(start_rule=start_rule, coverage=CoverageInfo(rules_declared=rules_declared))
