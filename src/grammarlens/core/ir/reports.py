"""
Report types for the static analyses.

Every report carries a ``success`` flag and a list of structured errors so
callers can serialize it directly into whatever transport they use.
Collections are filled in a deterministic order by the analyzers (rule
declaration order unless noted), so identical inputs serialize identically.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..errors import ErrorType, GrammarLensError
from .automaton import AutomatonStats
from .grammar import RuleKind


class StructuredError(BaseModel):
    """Machine-readable error entry attached to a failed report."""

    type: ErrorType
    message: str
    rule: str | None = None

    @classmethod
    def from_exception(cls, exc: GrammarLensError) -> StructuredError:
        rule = exc.context.rule if exc.context is not None else None
        return cls(type=exc.error_type, message=exc.message, rule=rule)


class AnalysisReport(BaseModel):
    """Common envelope for all reports."""

    success: bool = True
    errors: list[StructuredError] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


# =============================================================================
# Validation
# =============================================================================


class ValidationIssue(BaseModel):
    """A single finding from grammar validation."""

    severity: str  # "error" | "warning"
    code: str
    message: str
    rule: str | None = None
    state: int | None = None


class ValidationResult(AnalysisReport):
    grammar_name: str = ""
    fingerprint: str = ""
    issues: list[ValidationIssue] = Field(default_factory=list)
    stats: AutomatonStats = Field(default_factory=AutomatonStats)

    @property
    def fatal_issues(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]


# =============================================================================
# Rule graph
# =============================================================================


class RuleNode(BaseModel):
    """A rule in the dependency graph."""

    rule_name: str
    type: RuleKind
    calls: list[str] = Field(default_factory=list)
    called_by: list[str] = Field(default_factory=list)
    depth: int = 0
    recursive: bool = False
    unused: bool = False
    reachable: bool = True


class RuleGraphEdge(BaseModel):
    caller: str
    callee: str
    call_sites: int = 1


class RuleCycle(BaseModel):
    """A cycle in the rule graph, listed in discovery order."""

    rules: list[str]

    @property
    def path(self) -> str:
        return " -> ".join(self.rules + self.rules[:1])

    @property
    def is_self_loop(self) -> bool:
        return len(self.rules) == 1


class RuleGraph(AnalysisReport):
    """Rule dependency graph with cycle, usage, and coupling data."""

    grammar_name: str = ""
    entry_rules: list[str] = Field(default_factory=list)
    nodes: list[RuleNode] = Field(default_factory=list)
    edges: list[RuleGraphEdge] = Field(default_factory=list)
    cycles: list[RuleCycle] = Field(default_factory=list)
    unused_rules: list[str] = Field(default_factory=list)
    unreachable_rules: list[str] = Field(default_factory=list)
    recursive_rules: list[str] = Field(default_factory=list)
    fan_in: dict[str, int] = Field(default_factory=dict)
    fan_out: dict[str, int] = Field(default_factory=dict)
    depths: dict[str, int] = Field(default_factory=dict)
    total_rules: int = 0

    def node(self, rule_name: str) -> RuleNode | None:
        for n in self.nodes:
            if n.rule_name == rule_name:
                return n
        return None

    def callees(self, rule_name: str) -> list[str]:
        n = self.node(rule_name)
        return list(n.calls) if n else []


# =============================================================================
# Left recursion
# =============================================================================


class LeftRecursiveRule(BaseModel):
    rule_name: str
    is_direct: bool = False
    is_transformed: bool = False
    precedence_levels: list[int] = Field(default_factory=list)
    alternatives: int = 1
    line: int | None = None


class IndirectLeftRecursion(BaseModel):
    rules: list[str]
    leftmost_verified: bool = True

    @property
    def path(self) -> str:
        return " -> ".join(self.rules + self.rules[:1])


class LeftRecursionReport(AnalysisReport):
    left_recursive_rules: list[LeftRecursiveRule] = Field(default_factory=list)
    transformed_rules: list[str] = Field(default_factory=list)
    indirect_cycles: list[IndirectLeftRecursion] = Field(default_factory=list)
    total_rules: int = 0
    left_recursive_count: int = 0
    transformed_count: int = 0
    indirect_count: int = 0
    leftmost_verified: bool = True
    notes: list[str] = Field(default_factory=list)


# =============================================================================
# Complexity
# =============================================================================


class RuleComplexity(BaseModel):
    rule_name: str
    type: RuleKind
    alternatives: int = 1
    decision_points: int = 0
    max_decision_alternatives: int = 0
    depth: int = 0
    fan_in: int = 0
    fan_out: int = 0
    recursive: bool = False
    score: int = 0


class ComplexityMetrics(AnalysisReport):
    total_rules: int = 0
    parser_rules: int = 0
    lexer_rules: int = 0
    fragment_rules: int = 0
    avg_alternatives_per_rule: float = 0.0
    total_decision_points: int = 0
    max_rule_depth: int = 0
    rule_metrics: dict[str, RuleComplexity] = Field(default_factory=dict)
    most_complex: list[str] = Field(default_factory=list)


# =============================================================================
# FIRST / FOLLOW
# =============================================================================


class AlternativeLookahead(BaseModel):
    alternative: int
    lookahead_tokens: list[str] = Field(default_factory=list)
    has_predicate: bool = False


class DecisionAnalysis(BaseModel):
    decision_number: int
    rule_name: str
    state_number: int
    alternative_count: int
    alternatives: list[AlternativeLookahead] = Field(default_factory=list)
    has_ambiguous_lookahead: bool = False
    conflicting_tokens: list[str] = Field(default_factory=list)


class RuleAnalysis(BaseModel):
    rule_name: str
    first_set: list[str] = Field(default_factory=list)
    follow_set: list[str] = Field(default_factory=list)
    nullable: bool = False
    has_ll1_conflict: bool = False
    conflicting_decisions: list[int] = Field(default_factory=list)
    alternative_count: int = 1


class FirstFollowReport(AnalysisReport):
    rules: list[RuleAnalysis] = Field(default_factory=list)
    decisions: list[DecisionAnalysis] = Field(default_factory=list)
    total_parser_rules: int = 0
    nullable_rule_count: int = 0
    rules_with_conflicts: int = 0
    total_decisions: int = 0
    ambiguous_decisions: int = 0
    first_decision_only: bool = False


# =============================================================================
# Decision reporting
# =============================================================================


class DecisionGraphNode(BaseModel):
    id: int
    label: str
    kind: str
    is_decision: bool = False


class DecisionGraphEdge(BaseModel):
    source: int
    target: int
    label: str


class DecisionDetail(BaseModel):
    rule_name: str
    decision_number: int
    state_number: int
    alternative_count: int
    nodes: list[DecisionGraphNode] = Field(default_factory=list)
    edges: list[DecisionGraphEdge] = Field(default_factory=list)
    state_count: int = 0
    transition_count: int = 0
    truncated: bool = False
    dot_format: str = ""


class DecisionVisualization(AnalysisReport):
    rule_name: str = ""
    total_decisions: int = 0
    decisions: list[DecisionDetail] = Field(default_factory=list)
