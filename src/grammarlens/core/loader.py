"""
Loading serialized compiled grammars.

The grammar compiler hands grammars over as JSON produced by
``CompiledGrammar.model_dump_json``. ``GrammarCache`` avoids re-parsing the
same file content: entries are keyed by the SHA256 of the file bytes and
the least recently used entry goes once the cache is full.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidGrammarError, make_invalid_grammar_error
from .ir import CompiledGrammar

logger = logging.getLogger(__name__)


def compute_content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def parse_grammar(data: str | bytes) -> CompiledGrammar:
    """
    Deserialize a compiled grammar.

    Raises:
        InvalidGrammarError: If the payload is not a well-formed grammar
    """
    try:
        grammar = CompiledGrammar.model_validate_json(data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()))
        detail = first.get("msg", str(e))
        message = f"Malformed grammar at {location}: {detail}" if location else f"Malformed grammar: {detail}"
        raise InvalidGrammarError(message) from e

    for i, rule in enumerate(grammar.rules):
        if rule.index != i:
            raise make_invalid_grammar_error(f"Rule '{rule.name}' has index {rule.index}, expected {i}", rule=rule.name)
    for i, state in enumerate(grammar.automaton.states):
        if state.id != i:
            raise make_invalid_grammar_error(f"State at position {i} has id {state.id}")
    return grammar


def load_grammar(path: Path) -> CompiledGrammar:
    """
    Read a compiled grammar from a JSON file.

    Raises:
        InvalidGrammarError: If the file is missing, unreadable, or malformed
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise InvalidGrammarError(f"Cannot read grammar file {path}: {e}") from e
    grammar = parse_grammar(data)
    logger.debug("Loaded grammar %s from %s (%d rules)", grammar.name, path, len(grammar.rules))
    return grammar


def dump_grammar(grammar: CompiledGrammar, path: Path) -> None:
    path.write_text(grammar.model_dump_json(indent=2), encoding="utf-8")


DEFAULT_MAX_ENTRIES = 32


class GrammarCache:
    """
    Content-addressed LRU cache of parsed grammars.

    Safe to share between threads; the only state it holds is the mapping
    from content hash to the immutable grammar. Once more than
    ``max_entries`` grammars are held, the least recently used is dropped.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, CompiledGrammar] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def load(self, path: Path) -> CompiledGrammar:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise InvalidGrammarError(f"Cannot read grammar file {path}: {e}") from e

        key = compute_content_hash(data)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self.hits += 1
                self._entries.move_to_end(key)
                logger.debug("Grammar cache hit for %s", path)
                return cached

        grammar = parse_grammar(data)
        with self._lock:
            self.misses += 1
            grammar = self._entries.setdefault(key, grammar)
            self._entries.move_to_end(key)
            self._evict()
            return grammar

    def resize(self, max_entries: int) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        with self._lock:
            self.max_entries = max_entries
            self._evict()

    def _evict(self) -> None:
        while len(self._entries) > self.max_entries:
            key, grammar = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Evicted grammar %s (%s) from cache", grammar.name, key[:12])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
