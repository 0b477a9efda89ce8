"""
Structural validation of compiled grammars.

The analyses trust the automaton they are given. Validation checks that
trust up front so a malformed input is reported as one clear list of
findings instead of surfacing as an internal error deep in a traversal.
"""

from __future__ import annotations

import logging
from collections import Counter

from ..core.errors import make_invalid_grammar_error
from ..core.ir import (
    AutomatonState,
    AutomatonStats,
    CompiledGrammar,
    Rule,
    RuleKind,
    StateKind,
    Transition,
    TransitionKind,
    ValidationIssue,
    ValidationResult,
)
from ..core.ir.lookahead import EOF_LABEL
from .rule_graph import build_graph

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"


def _error(code: str, message: str, rule: str | None = None, state: int | None = None) -> ValidationIssue:
    return ValidationIssue(severity=ERROR, code=code, message=message, rule=rule, state=state)


def _warning(code: str, message: str, rule: str | None = None, state: int | None = None) -> ValidationIssue:
    return ValidationIssue(severity=WARNING, code=code, message=message, rule=rule, state=state)


def _rule_issues(grammar: CompiledGrammar) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    states = grammar.automaton.states

    for name, count in Counter(grammar.rule_names).items():
        if count > 1:
            issues.append(_error("duplicate_rule", f"Rule '{name}' is declared {count} times", rule=name))

    for position, rule in enumerate(grammar.rules):
        if rule.index != position:
            issues.append(
                _error("bad_rule_index", f"Rule '{rule.name}' has index {rule.index}, expected {position}", rule=rule.name)
            )
        for label, state_id, kind in (
            ("start", rule.start_state, StateKind.RULE_START),
            ("stop", rule.stop_state, StateKind.RULE_STOP),
        ):
            if not 0 <= state_id < len(states):
                message = f"Rule '{rule.name}' {label} state {state_id} does not exist"
                issues.append(_error("missing_state", message, rule=rule.name, state=state_id))
                continue
            state = states[state_id]
            if state.kind != kind or state.rule != rule.index:
                message = (
                    f"Rule '{rule.name}' {label} state {state_id} is a "
                    f"{state.kind.value} state of rule {state.rule}"
                )
                issues.append(_error("bad_rule_bounds", message, rule=rule.name, state=state_id))

    for name in grammar.entry_rules:
        if not grammar.has_rule(name):
            issues.append(_error("unknown_entry_rule", f"Entry rule '{name}' is not declared", rule=name))
    return issues


def _transition_issues(
    grammar: CompiledGrammar, state: AutomatonState, owner: Rule, transition: Transition, vocabulary: set[str]
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    n_states = len(grammar.automaton.states)

    if not 0 <= transition.target < n_states:
        message = f"Transition from state {state.id} targets non-existent state {transition.target}"
        return [_error("missing_state", message, rule=owner.name, state=state.id)]

    if transition.kind == TransitionKind.RULE_CALL:
        if transition.rule is None or not 0 <= transition.rule < len(grammar.rules):
            message = f"Rule call from state {state.id} names non-existent rule {transition.rule}"
            return [_error("missing_rule", message, rule=owner.name, state=state.id)]
        callee = grammar.rules[transition.rule]
        if transition.target != callee.start_state:
            message = (
                f"Call to '{callee.name}' from state {state.id} targets state {transition.target}, "
                f"not the rule start {callee.start_state}"
            )
            issues.append(_error("bad_call_target", message, rule=owner.name, state=state.id))
        if transition.follow is None or not 0 <= transition.follow < n_states:
            message = f"Call to '{callee.name}' from state {state.id} has no valid return state"
            issues.append(_error("missing_follow", message, rule=owner.name, state=state.id))

    elif transition.kind == TransitionKind.TERMINAL and owner.kind == RuleKind.PARSER:
        if not transition.tokens:
            message = f"Terminal from state {state.id} matches no token"
            issues.append(_error("empty_terminal", message, rule=owner.name, state=state.id))
        for token in transition.tokens:
            if token not in vocabulary:
                message = f"Token {token} used in rule '{owner.name}' is not in the vocabulary"
                issues.append(_error("unknown_token", message, rule=owner.name, state=state.id))

    return issues


def _state_issues(grammar: CompiledGrammar) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    automaton = grammar.automaton
    vocabulary = {t.name for t in grammar.tokens} | {EOF_LABEL}

    for position, state in enumerate(automaton.states):
        if state.id != position:
            issues.append(_error("bad_state_id", f"State at position {position} has id {state.id}", state=position))
        if not 0 <= state.rule < len(grammar.rules):
            message = f"State {state.id} belongs to non-existent rule {state.rule}"
            issues.append(_error("missing_rule", message, state=state.id))
            continue
        owner = grammar.rules[state.rule]

        if state.kind == StateKind.DECISION and len(state.transitions) < 2:
            message = f"Decision state {state.id} has {len(state.transitions)} alternative(s)"
            issues.append(_warning("trivial_decision", message, rule=owner.name, state=state.id))

        for t_id in state.transitions:
            if not 0 <= t_id < len(automaton.transitions):
                message = f"State {state.id} references non-existent transition {t_id}"
                issues.append(_error("missing_transition", message, rule=owner.name, state=state.id))
                continue
            issues.extend(_transition_issues(grammar, state, owner, automaton.transitions[t_id], vocabulary))

    return issues


def validate_grammar(grammar: CompiledGrammar) -> ValidationResult:
    """
    Check a compiled grammar for structural problems.

    Fatal findings have severity ``error``; the grammar is still usable
    when only ``warning`` findings are present.
    """
    issues = _rule_issues(grammar) + _state_issues(grammar)
    fatal = any(i.severity == ERROR for i in issues)

    stats = AutomatonStats()
    if not fatal:
        # Reachability needs a sound automaton to walk
        graph = build_graph(grammar)
        for name in graph.unreachable_rules:
            issues.append(_warning("unreachable_rule", f"Rule '{name}' is not reachable from any entry rule", rule=name))
        stats = AutomatonStats.of(grammar.automaton)

    result = ValidationResult(
        success=not fatal,
        grammar_name=grammar.name,
        fingerprint=grammar.fingerprint(),
        issues=issues,
        stats=stats,
    )
    logger.info(
        "Validated grammar %s: %d error(s), %d warning(s)",
        grammar.name,
        len(result.fatal_issues),
        len(result.warnings),
    )
    return result


def ensure_valid(grammar: CompiledGrammar) -> ValidationResult:
    """
    Validate and raise on the first fatal finding.

    Raises:
        InvalidGrammarError: If the grammar has any error-severity issue
    """
    result = validate_grammar(grammar)
    if result.fatal_issues:
        first = result.fatal_issues[0]
        raise make_invalid_grammar_error(first.message, rule=first.rule)
    return result
