"""Tests for CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from grammarlens import __version__
from grammarlens.cli import app

DANGLING = "if x then if y then a else b"


@pytest.fixture
def cli_runner():
    """Return a CLI test runner."""
    return CliRunner()


class TestStaticCommands:
    def test_validate(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["validate", str(grammar_file)])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["grammar_name"] == "IfThenElse"

    def test_validate_missing_file(self, cli_runner, tmp_path: Path):
        result = cli_runner.invoke(app, ["validate", str(tmp_path / "missing.json")])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["errors"][0]["type"] == "invalid_grammar"

    def test_call_graph_dot(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["call-graph", str(grammar_file), "--format", "dot"])

        assert result.exit_code == 0
        assert result.stdout.startswith("digraph CallGraph {")

    def test_call_graph_mermaid(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["call-graph", str(grammar_file), "-f", "mermaid"])

        assert result.exit_code == 0
        assert result.stdout.startswith("graph LR")

    def test_call_graph_bad_format(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["call-graph", str(grammar_file), "--format", "svg"])
        assert result.exit_code == 1

    def test_left_recursion(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["left-recursion", str(grammar_file)])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["left_recursive_count"] == 0

    def test_complexity_table(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["complexity", str(grammar_file), "--table"])

        assert result.exit_code == 0
        assert "Rule complexity" in result.stdout
        assert "stat" in result.stdout

    def test_first_follow_rule(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["first-follow", str(grammar_file), "--rule", "stat"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["rules"][0]["first_set"] == ["'if'", "ID"]

    def test_decisions_unknown_rule(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["decisions", str(grammar_file), "nope"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["errors"][0]["type"] == "rule_not_found"


class TestAmbiguityCommand:
    def test_inline_samples(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["ambiguity", str(grammar_file), "stat", "-s", DANGLING, "-s", "x"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["has_ambiguities"] is True
        assert data["total_samples"] == 2

    def test_samples_file(self, cli_runner, grammar_file, tmp_path: Path):
        samples = tmp_path / "samples.txt"
        samples.write_text(f"{DANGLING}\n\nx\n", encoding="utf-8")

        result = cli_runner.invoke(app, ["ambiguity", str(grammar_file), "stat", "--samples-file", str(samples)])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["total_samples"] == 2

    def test_non_positive_timeout(self, cli_runner, grammar_file):
        result = cli_runner.invoke(app, ["ambiguity", str(grammar_file), "stat", "-s", "x", "--timeout", "0"])
        assert result.exit_code == 1


class TestGlobalOptions:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert result.stdout.startswith(f"grammarlens {__version__}\n")

    def test_bad_config(self, cli_runner, grammar_file, tmp_path: Path):
        config = tmp_path / "grammarlens.toml"
        config.write_text("[profiler]\nmax_workers = 0\n", encoding="utf-8")

        result = cli_runner.invoke(app, ["--config", str(config), "validate", str(grammar_file)])
        assert result.exit_code == 1

    def test_config_applies(self, cli_runner, grammar_file, tmp_path: Path):
        config = tmp_path / "grammarlens.toml"
        config.write_text('[analysis]\nentry_rules = ["nope"]\n', encoding="utf-8")

        result = cli_runner.invoke(app, ["-c", str(config), "call-graph", str(grammar_file)])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["errors"][0]["type"] == "rule_not_found"
