"""
grammarlens configuration.

Settings live in ``grammarlens.toml``:

    [analysis]
    entry_rules = ["prog"]
    first_decision_only = false
    verify_leftmost = true

    [profiler]
    sample_timeout_seconds = 5.0
    max_workers = 4

    [cache]
    max_entries = 32

    [logging]
    level = "INFO"

Every section and key is optional; a missing file yields the defaults.
"""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "grammarlens.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Sections
# =============================================================================


@dataclass
class AnalysisConfig:
    """Static analysis settings."""

    entry_rules: list[str] = field(default_factory=list)
    first_decision_only: bool = False  # legacy rule-level conflict check
    verify_leftmost: bool = True  # strict indirect left recursion


@dataclass
class ProfilerConfig:
    """Ambiguity profiler settings."""

    sample_timeout_seconds: float = 5.0
    max_workers: int = 4


@dataclass
class CacheConfig:
    """Loaded-grammar cache settings."""

    max_entries: int = 32


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class GrammarLensConfig:
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    profiler: ProfilerConfig = field(default_factory=ProfilerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# =============================================================================
# Loading
# =============================================================================


def _expect(section: str, data: dict[str, Any], key: str, kind: type | tuple[type, ...], default: Any) -> Any:
    if key not in data:
        return default
    value = data[key]
    # bool is an int subclass; reject it where a number is expected
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ValueError(f"{section}.{key}: expected {_kind_name(kind)}, got {value!r}")
    if not isinstance(value, kind):
        raise ValueError(f"{section}.{key}: expected {_kind_name(kind)}, got {value!r}")
    return value


def _kind_name(kind: type | tuple[type, ...]) -> str:
    if isinstance(kind, tuple):
        return " or ".join(k.__name__ for k in kind)
    return kind.__name__


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"{name}: expected a table")
    return section


def parse_config(data: dict[str, Any]) -> GrammarLensConfig:
    """Build a config from already-parsed TOML data."""
    analysis_data = _section(data, "analysis")
    profiler_data = _section(data, "profiler")
    cache_data = _section(data, "cache")
    logging_data = _section(data, "logging")

    entry_rules = _expect("analysis", analysis_data, "entry_rules", list, [])
    if not all(isinstance(r, str) for r in entry_rules):
        raise ValueError(f"analysis.entry_rules: expected a list of rule names, got {entry_rules!r}")

    analysis = AnalysisConfig(
        entry_rules=list(entry_rules),
        first_decision_only=_expect("analysis", analysis_data, "first_decision_only", bool, False),
        verify_leftmost=_expect("analysis", analysis_data, "verify_leftmost", bool, True),
    )

    timeout = _expect("profiler", profiler_data, "sample_timeout_seconds", (int, float), 5.0)
    if timeout <= 0:
        raise ValueError(f"profiler.sample_timeout_seconds: must be positive, got {timeout!r}")
    workers = _expect("profiler", profiler_data, "max_workers", int, 4)
    if workers < 1:
        raise ValueError(f"profiler.max_workers: must be at least 1, got {workers!r}")
    profiler = ProfilerConfig(sample_timeout_seconds=float(timeout), max_workers=workers)

    max_entries = _expect("cache", cache_data, "max_entries", int, 32)
    if max_entries < 1:
        raise ValueError(f"cache.max_entries: must be at least 1, got {max_entries!r}")

    level = _expect("logging", logging_data, "level", str, "INFO").upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level: expected one of {', '.join(_LOG_LEVELS)}, got {level!r}")

    return GrammarLensConfig(
        analysis=analysis,
        profiler=profiler,
        cache=CacheConfig(max_entries=max_entries),
        logging=LoggingConfig(level=level),
    )


def load_config(path: Path | None = None) -> GrammarLensConfig:
    """
    Load configuration from ``path`` (default: ./grammarlens.toml).

    Raises:
        ValueError: If a key holds a value of the wrong type or range
    """
    if path is None:
        path = Path.cwd() / CONFIG_FILENAME
    if not path.exists():
        logger.debug("No config at %s, using defaults", path)
        return GrammarLensConfig()

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"{path}: {e}") from e

    config = parse_config(data)
    logger.debug("Loaded config from %s", path)
    return config
