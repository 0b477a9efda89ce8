"""
Automaton types for grammarlens IR.

A compiled grammar's state machine is stored as two flat arenas: states and
transitions. States reference their outgoing transitions by index and
transitions reference their target states by index, so cyclic structures
(loops, recursive rules) need no object cycles.

Example layout for ``term: NUMBER;``:

    s4 (rule_start) --eps--> s6 (basic) --NUMBER--> s7 (basic) --eps--> s5 (rule_stop)
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..errors import make_internal_error


class StateKind(str, Enum):
    """Structural role of an automaton state."""

    BASIC = "basic"
    DECISION = "decision"
    RULE_START = "rule_start"
    RULE_STOP = "rule_stop"


class TransitionKind(str, Enum):
    """What a transition does when the parser follows it."""

    EPSILON = "epsilon"  # consumes nothing
    TERMINAL = "terminal"  # consumes one token from `tokens`
    RULE_CALL = "rule_call"  # invokes another rule, resumes at `follow`
    PREDICATE = "predicate"  # runtime guard, consumes nothing


class Transition(BaseModel):
    """
    A single automaton edge.

    For rule calls, ``target`` is the callee's start state and ``follow`` is
    the state in the caller where parsing resumes after the callee returns.
    """

    kind: TransitionKind
    target: int
    tokens: tuple[str, ...] = ()
    rule: int | None = None
    follow: int | None = None
    predicate: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_epsilon_like(self) -> bool:
        """True for transitions that consume no input."""
        return self.kind in (TransitionKind.EPSILON, TransitionKind.PREDICATE)

    def label(self, rule_names: list[str] | None = None) -> str:
        """Short display label used in reports and DOT output."""
        if self.kind == TransitionKind.TERMINAL:
            return ", ".join(self.tokens) if len(self.tokens) > 1 else (self.tokens[0] if self.tokens else "?")
        if self.kind == TransitionKind.RULE_CALL:
            if rule_names is not None and self.rule is not None and 0 <= self.rule < len(rule_names):
                return rule_names[self.rule]
            return f"rule{self.rule}"
        if self.kind == TransitionKind.PREDICATE:
            return "pred"
        return "ε"


class AutomatonState(BaseModel):
    """A state owned by exactly one rule."""

    id: int
    rule: int
    kind: StateKind = StateKind.BASIC
    transitions: tuple[int, ...] = ()

    model_config = ConfigDict(frozen=True)


class DecisionPoint(BaseModel):
    """Derived view of a decision state that requires prediction."""

    decision_id: int
    rule_index: int
    state_id: int
    alternative_count: int

    model_config = ConfigDict(frozen=True)


class Automaton(BaseModel):
    """
    Flat arena of states and transitions.

    The automaton is an immutable input to every analysis. Lookups validate
    indices and raise ``AnalysisInternalError`` on out-of-range references.
    """

    states: tuple[AutomatonState, ...] = ()
    transitions: tuple[Transition, ...] = ()

    model_config = ConfigDict(frozen=True)

    def state(self, state_id: int) -> AutomatonState:
        if not 0 <= state_id < len(self.states):
            raise make_internal_error(f"Reference to non-existent state {state_id}", state=state_id)
        return self.states[state_id]

    def transition(self, transition_id: int) -> Transition:
        if not 0 <= transition_id < len(self.transitions):
            raise make_internal_error(f"Reference to non-existent transition {transition_id}")
        return self.transitions[transition_id]

    def outgoing(self, state_id: int) -> list[Transition]:
        """Outgoing transitions of a state, in alternative order."""
        return [self.transition(t) for t in self.state(state_id).transitions]

    def decision_points(self) -> list[DecisionPoint]:
        """
        Enumerate decision points in ascending state-id order.

        Only decision-kind states with at least two outgoing transitions
        require prediction; the enumeration index is the decision id.
        """
        points: list[DecisionPoint] = []
        for st in self.states:
            if st.kind == StateKind.DECISION and len(st.transitions) >= 2:
                points.append(
                    DecisionPoint(
                        decision_id=len(points),
                        rule_index=st.rule,
                        state_id=st.id,
                        alternative_count=len(st.transitions),
                    )
                )
        return points


class AutomatonStats(BaseModel):
    """Size summary of an automaton."""

    states: int = Field(default=0)
    transitions: int = Field(default=0)
    decisions: int = Field(default=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, automaton: Automaton) -> AutomatonStats:
        return cls(
            states=len(automaton.states),
            transitions=len(automaton.transitions),
            decisions=len(automaton.decision_points()),
        )
