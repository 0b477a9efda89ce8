"""
Construction helpers for compiled grammars.

Grammar front ends (and test fixtures) describe rule bodies with a handful of
combinators and let ``GrammarBuilder`` lay out the automaton. The layout
mirrors the usual recursive-transition-network shape: every rule gets a
start and a stop state, alternatives branch from a decision state and merge
into a block end, loops branch from a decision state at the loop entry.

Example:

    g = GrammarBuilder("Expr")
    g.rule("expr", alt(seq("expr", "'+'", "term"), "term"))
    g.rule("term", "NUMBER")
    g.lexer_rule("NUMBER", r"[0-9]+")
    g.token("WS", r"\\s+", skip=True)
    grammar = g.build()

Strings are shorthand: quoted names and names starting with an uppercase
letter are tokens, anything else is a rule reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import make_invalid_grammar_error
from .ir import (
    Automaton,
    AutomatonState,
    CompiledGrammar,
    Rule,
    RuleKind,
    StateKind,
    TokenType,
    Transition,
    TransitionKind,
)
from .ir.lookahead import EOF_LABEL

# =============================================================================
# Rule body combinators
# =============================================================================


@dataclass(frozen=True)
class Element:
    """Base class for rule body elements."""


@dataclass(frozen=True)
class Tok(Element):
    names: tuple[str, ...]


@dataclass(frozen=True)
class Ref(Element):
    rule: str


@dataclass(frozen=True)
class Pred(Element):
    text: str


@dataclass(frozen=True)
class Empty(Element):
    pass


@dataclass(frozen=True)
class Seq(Element):
    items: tuple[Element, ...]


@dataclass(frozen=True)
class Alt(Element):
    options: tuple[Element, ...]


@dataclass(frozen=True)
class Star(Element):
    body: Element


@dataclass(frozen=True)
class Plus(Element):
    body: Element


@dataclass(frozen=True)
class Opt(Element):
    body: Element


ElementLike = Element | str


def _coerce(item: ElementLike) -> Element:
    if isinstance(item, Element):
        return item
    if not item:
        raise make_invalid_grammar_error("Empty symbol name in rule body")
    if item.startswith("'") or item[0].isupper():
        return Tok((item,))
    return Ref(item)


def tok(*names: str) -> Tok:
    """Match one token out of ``names`` (a token set when several are given)."""
    return Tok(tuple(names))


def ref(rule: str) -> Ref:
    return Ref(rule)


def pred(text: str) -> Pred:
    return Pred(text)


def empty() -> Empty:
    return Empty()


def seq(*items: ElementLike) -> Seq:
    return Seq(tuple(_coerce(i) for i in items))


def alt(*options: ElementLike) -> Alt:
    return Alt(tuple(_coerce(o) for o in options))


def star(*items: ElementLike) -> Star:
    return Star(_coerce(items[0]) if len(items) == 1 else seq(*items))


def plus(*items: ElementLike) -> Plus:
    return Plus(_coerce(items[0]) if len(items) == 1 else seq(*items))


def opt(*items: ElementLike) -> Opt:
    return Opt(_coerce(items[0]) if len(items) == 1 else seq(*items))


# =============================================================================
# Builder
# =============================================================================


@dataclass
class _RuleDecl:
    name: str
    kind: RuleKind
    body: Element | None
    pattern: str | None = None
    line: int | None = None


@dataclass
class _Arena:
    """Mutable scratch space; frozen into an ``Automaton`` at the end."""

    kinds: list[StateKind] = field(default_factory=list)
    owners: list[int] = field(default_factory=list)
    outgoing: list[list[int]] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)

    def new_state(self, rule: int, kind: StateKind = StateKind.BASIC) -> int:
        self.kinds.append(kind)
        self.owners.append(rule)
        self.outgoing.append([])
        return len(self.kinds) - 1

    def connect(self, source: int, transition: Transition) -> None:
        self.transitions.append(transition)
        self.outgoing[source].append(len(self.transitions) - 1)

    def epsilon(self, source: int, target: int) -> None:
        self.connect(source, Transition(kind=TransitionKind.EPSILON, target=target))

    def freeze(self) -> Automaton:
        states = tuple(
            AutomatonState(id=i, rule=self.owners[i], kind=self.kinds[i], transitions=tuple(self.outgoing[i]))
            for i in range(len(self.kinds))
        )
        return Automaton(states=states, transitions=tuple(self.transitions))


class GrammarBuilder:
    """Accumulates rule and token declarations, then lays out the automaton."""

    def __init__(self, name: str, entry_rules: list[str] | tuple[str, ...] = ()):
        self.name = name
        self.entry_rules = tuple(entry_rules)
        self._rules: list[_RuleDecl] = []
        self._literals: list[TokenType] = []
        self._named: list[TokenType] = []

    # -- declarations ---------------------------------------------------------

    def rule(self, name: str, body: ElementLike, line: int | None = None) -> GrammarBuilder:
        """Declare a parser rule."""
        self._declare(_RuleDecl(name=name, kind=RuleKind.PARSER, body=_coerce(body), line=line))
        return self

    def lexer_rule(
        self,
        name: str,
        pattern: str,
        skip: bool = False,
        fragment: bool = False,
        body: ElementLike | None = None,
    ) -> GrammarBuilder:
        """
        Declare a lexer rule.

        Non-fragment lexer rules also become named tokens matching
        ``pattern``. ``body`` lets a lexer rule call fragments; without it
        the rule is a single terminal over ``pattern``.
        """
        kind = RuleKind.FRAGMENT if fragment else RuleKind.LEXER
        element = _coerce(body) if body is not None else None
        self._declare(_RuleDecl(name=name, kind=kind, body=element, pattern=pattern))
        if not fragment:
            self.token(name, pattern, skip=skip)
        return self

    def token(self, name: str, pattern: str, skip: bool = False) -> GrammarBuilder:
        """Declare a named token without a lexer rule."""
        if any(t.name == name for t in self._named):
            raise make_invalid_grammar_error(f"Duplicate token '{name}'")
        self._named.append(TokenType(name=name, pattern=pattern, skip=skip))
        return self

    def literal(self, text: str) -> str:
        """Register a literal token and return its quoted name."""
        name = f"'{text}'"
        if not any(t.name == name for t in self._literals):
            self._literals.append(TokenType(name=name, pattern=text, is_literal=True))
        return name

    def _declare(self, decl: _RuleDecl) -> None:
        if any(r.name == decl.name for r in self._rules):
            raise make_invalid_grammar_error(f"Duplicate rule '{decl.name}'", rule=decl.name)
        self._rules.append(decl)

    # -- layout ---------------------------------------------------------------

    def build(self) -> CompiledGrammar:
        arena = _Arena()
        index = {decl.name: i for i, decl in enumerate(self._rules)}
        bounds: list[tuple[int, int]] = []
        for i in range(len(self._rules)):
            start = arena.new_state(i, StateKind.RULE_START)
            stop = arena.new_state(i, StateKind.RULE_STOP)
            bounds.append((start, stop))

        rules: list[Rule] = []
        for i, decl in enumerate(self._rules):
            start, stop = bounds[i]
            if decl.body is None:
                entry = arena.new_state(i)
                exit_ = arena.new_state(i)
                arena.connect(
                    entry,
                    Transition(kind=TransitionKind.TERMINAL, target=exit_, tokens=(decl.pattern or decl.name,)),
                )
            else:
                entry, exit_ = self._emit(decl.body, i, decl, arena, index, bounds)
            arena.epsilon(start, entry)
            arena.epsilon(exit_, stop)
            alternatives = len(decl.body.options) if isinstance(decl.body, Alt) else 1
            rules.append(
                Rule(
                    index=i,
                    name=decl.name,
                    kind=decl.kind,
                    alternative_count=alternatives,
                    start_state=start,
                    stop_state=stop,
                    line=decl.line,
                )
            )

        for name in self.entry_rules:
            if name not in index:
                raise make_invalid_grammar_error(f"Entry rule '{name}' is not declared", rule=name)

        return CompiledGrammar(
            name=self.name,
            rules=tuple(rules),
            automaton=arena.freeze(),
            tokens=tuple(self._literals) + tuple(self._named),
            entry_rules=self.entry_rules,
        )

    def _emit(
        self,
        element: Element,
        rule: int,
        decl: _RuleDecl,
        arena: _Arena,
        index: dict[str, int],
        bounds: list[tuple[int, int]],
    ) -> tuple[int, int]:
        """Lay out one element; returns its (entry, exit) states."""
        if isinstance(element, Tok):
            names = tuple(self._resolve_token(n, decl) for n in element.names)
            a, b = arena.new_state(rule), arena.new_state(rule)
            arena.connect(a, Transition(kind=TransitionKind.TERMINAL, target=b, tokens=names))
            return a, b

        if isinstance(element, Ref):
            if element.rule not in index:
                raise make_invalid_grammar_error(
                    f"Rule '{decl.name}' references undefined rule '{element.rule}'", rule=decl.name
                )
            callee = index[element.rule]
            a, b = arena.new_state(rule), arena.new_state(rule)
            arena.connect(
                a,
                Transition(kind=TransitionKind.RULE_CALL, target=bounds[callee][0], rule=callee, follow=b),
            )
            return a, b

        if isinstance(element, Pred):
            a, b = arena.new_state(rule), arena.new_state(rule)
            arena.connect(a, Transition(kind=TransitionKind.PREDICATE, target=b, predicate=element.text))
            return a, b

        if isinstance(element, Empty):
            a = arena.new_state(rule)
            return a, a

        if isinstance(element, Seq):
            if not element.items:
                a = arena.new_state(rule)
                return a, a
            entry, exit_ = self._emit(element.items[0], rule, decl, arena, index, bounds)
            for item in element.items[1:]:
                nxt_entry, nxt_exit = self._emit(item, rule, decl, arena, index, bounds)
                arena.epsilon(exit_, nxt_entry)
                exit_ = nxt_exit
            return entry, exit_

        if isinstance(element, Alt):
            if len(element.options) == 1:
                return self._emit(element.options[0], rule, decl, arena, index, bounds)
            decision = arena.new_state(rule, StateKind.DECISION)
            end = arena.new_state(rule)
            for option in element.options:
                entry, exit_ = self._emit(option, rule, decl, arena, index, bounds)
                arena.epsilon(decision, entry)
                arena.epsilon(exit_, end)
            return decision, end

        if isinstance(element, Opt):
            decision = arena.new_state(rule, StateKind.DECISION)
            end = arena.new_state(rule)
            entry, exit_ = self._emit(element.body, rule, decl, arena, index, bounds)
            arena.epsilon(decision, entry)
            arena.epsilon(decision, end)
            arena.epsilon(exit_, end)
            return decision, end

        if isinstance(element, Star):
            loop_entry = arena.new_state(rule, StateKind.DECISION)
            end = arena.new_state(rule)
            entry, exit_ = self._emit(element.body, rule, decl, arena, index, bounds)
            arena.epsilon(loop_entry, entry)
            arena.epsilon(loop_entry, end)
            arena.epsilon(exit_, loop_entry)
            return loop_entry, end

        if isinstance(element, Plus):
            entry, exit_ = self._emit(element.body, rule, decl, arena, index, bounds)
            loop_back = arena.new_state(rule, StateKind.DECISION)
            end = arena.new_state(rule)
            arena.epsilon(exit_, loop_back)
            arena.epsilon(loop_back, entry)
            arena.epsilon(loop_back, end)
            return entry, end

        raise make_invalid_grammar_error(f"Unsupported element {type(element).__name__}", rule=decl.name)

    def _resolve_token(self, name: str, decl: _RuleDecl) -> str:
        if decl.kind != RuleKind.PARSER:
            return name
        if name.startswith("'") and name.endswith("'") and len(name) >= 3:
            return self.literal(name[1:-1])
        if name == EOF_LABEL or any(t.name == name for t in self._named):
            return name
        raise make_invalid_grammar_error(
            f"Rule '{decl.name}' references undefined token '{name}'", rule=decl.name
        )
