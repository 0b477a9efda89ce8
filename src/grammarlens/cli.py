"""
grammarlens CLI.

Every command takes the path of a compiled grammar (JSON), prints its report
as JSON on stdout and exits with code 1 when the report is not successful.
Logs go to stderr.
"""

from __future__ import annotations

import logging
import platform
import sys
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from . import operations
from ._version import get_version
from .analysis.rule_graph import to_dot, to_mermaid
from .core.config import GrammarLensConfig, load_config
from .core.ir import AnalysisReport, ComplexityMetrics

logger = logging.getLogger(__name__)

console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

GRAPH_FORMATS = ("json", "dot", "mermaid")

app = typer.Typer(
    help="""grammarlens - analysis engine for compiled grammar automata

Static analyses: validate, call-graph, left-recursion, complexity,
first-follow, decisions. Sample-driven profiling: ambiguity.
""",
    no_args_is_help=True,
)


@dataclass
class _Options:
    config_path: Path | None = None
    verbose: bool = False


_options = _Options()


def _configure_logging(config: GrammarLensConfig) -> None:
    level = logging.DEBUG if _options.verbose else getattr(logging, config.logging.level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _load_config() -> GrammarLensConfig:
    try:
        config = load_config(_options.config_path)
    except ValueError as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)
    _configure_logging(config)
    operations.configure(config)
    return config


def _emit(report: AnalysisReport) -> None:
    typer.echo(report.to_json())
    if not report.success:
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to grammarlens.toml"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """grammarlens global options."""
    _options.config_path = config
    _options.verbose = verbose


# =============================================================================
# Static analyses
# =============================================================================


@app.command()
def validate(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
) -> None:
    """Check a compiled grammar for structural problems."""
    _load_config()
    _emit(operations.validate(grammar))


@app.command("call-graph")
def call_graph(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
    fmt: str = typer.Option("json", "--format", "-f", help="Output format: json, dot or mermaid"),
) -> None:
    """Rule dependency graph with cycles and unused rules."""
    if fmt not in GRAPH_FORMATS:
        typer.echo(f"Error: unknown format '{fmt}' (expected one of: {', '.join(GRAPH_FORMATS)})", err=True)
        raise typer.Exit(code=1)
    config = _load_config()
    report = operations.analyze_call_graph(grammar, config)
    if fmt == "json" or not report.success:
        _emit(report)
        return
    typer.echo(to_dot(report) if fmt == "dot" else to_mermaid(report))


@app.command("left-recursion")
def left_recursion(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
) -> None:
    """Direct, transformed and indirect left recursion."""
    config = _load_config()
    _emit(operations.analyze_left_recursion(grammar, config))


def _print_complexity_table(report: ComplexityMetrics) -> None:
    table = Table(title="Rule complexity")
    table.add_column("Rule")
    table.add_column("Type", style="dim")
    table.add_column("Alts", justify="right")
    table.add_column("Decisions", justify="right")
    table.add_column("Depth", justify="right")
    table.add_column("Fan in", justify="right")
    table.add_column("Fan out", justify="right")
    table.add_column("Recursive")
    table.add_column("Score", justify="right")

    for name, metrics in report.rule_metrics.items():
        table.add_row(
            name,
            metrics.type.value,
            str(metrics.alternatives),
            str(metrics.decision_points),
            str(metrics.depth),
            str(metrics.fan_in),
            str(metrics.fan_out),
            "[yellow]yes[/yellow]" if metrics.recursive else "",
            str(metrics.score),
        )

    console.print(table)
    console.print(
        f"\n[dim]{report.total_rules} rule(s), {report.total_decision_points} decision point(s), "
        f"max depth {report.max_rule_depth}[/dim]"
    )
    if report.most_complex:
        console.print(f"[dim]Most complex: {', '.join(report.most_complex)}[/dim]")


@app.command()
def complexity(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
    table: bool = typer.Option(False, "--table", help="Print a table instead of JSON"),
) -> None:
    """Per-rule complexity metrics."""
    config = _load_config()
    report = operations.analyze_complexity(grammar, config)
    if table and report.success:
        _print_complexity_table(report)
        return
    _emit(report)


@app.command("first-follow")
def first_follow(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
    rule: str | None = typer.Option(None, "--rule", "-r", help="Analyze only this rule"),
) -> None:
    """FIRST/FOLLOW sets and LL(1) conflicts."""
    config = _load_config()
    _emit(operations.analyze_first_follow(grammar, rule, config))


@app.command()
def decisions(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
    rule: str = typer.Argument(..., help="Rule whose decisions to describe"),
) -> None:
    """Decision points of one rule with DOT subgraphs."""
    _load_config()
    _emit(operations.visualize_decisions(grammar, rule))


# =============================================================================
# Profiling
# =============================================================================


def _read_samples(samples_file: Path) -> list[str]:
    """One sample per non-blank line."""
    try:
        text = samples_file.read_text(encoding="utf-8")
    except OSError as e:
        typer.echo(f"Error: cannot read samples file {samples_file}: {e}", err=True)
        raise typer.Exit(code=1)
    return [line for line in text.splitlines() if line.strip()]


@app.command()
def ambiguity(
    grammar: Path = typer.Argument(..., help="Compiled grammar JSON file"),
    start_rule: str = typer.Argument(..., help="Rule every sample is parsed from"),
    sample: list[str] | None = typer.Option(None, "--sample", "-s", help="Sample input (repeatable)"),
    samples_file: Path | None = typer.Option(None, "--samples-file", help="File with one sample per line"),
    timeout: float | None = typer.Option(None, "--timeout", help="Per-sample timeout in seconds"),
) -> None:
    """Parse sample inputs and report the ambiguities they hit."""
    config = _load_config()
    samples = list(sample or [])
    if samples_file is not None:
        samples.extend(_read_samples(samples_file))
    if timeout is not None:
        if timeout <= 0:
            typer.echo("Error: --timeout must be positive", err=True)
            raise typer.Exit(code=1)
        config.profiler.sample_timeout_seconds = timeout
    _emit(operations.detect_ambiguity(grammar, start_rule, samples, config))


@app.command()
def version() -> None:
    """Show version and environment information."""
    typer.echo(f"grammarlens {get_version()}")
    typer.echo(f"Python {platform.python_version()} ({platform.python_implementation()})")


def main(argv: list[str] | None = None) -> None:
    app(args=argv, standalone_mode=True)


if __name__ == "__main__":
    main(sys.argv[1:])
