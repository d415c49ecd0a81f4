"""Tests for the planview command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from planview import __version__
from planview.cli.main import app
from planview.config import reset_config

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    """CLI runner with a clean configuration."""
    monkeypatch.delenv("PLANVIEW_CONFIG_FILE", raising=False)
    monkeypatch.delenv("PLANVIEW_DEFAULT_DIALECT", raising=False)
    monkeypatch.delenv("PLANVIEW_LOG_LEVEL", raising=False)
    reset_config()
    yield CliRunner()
    reset_config()


@pytest.fixture
def cte_plan() -> str:
    return str(FIXTURES_DIR / "postgres_cte_analyze.txt")


class TestGlobalOptions:
    """--version and --log-level."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"planview version {__version__}" in result.output

    def test_no_args_shows_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, [])
        assert "Usage" in result.output

    def test_bad_log_level(self, runner: CliRunner, cte_plan: str) -> None:
        result = runner.invoke(app, ["--log-level", "loud", "parse", cte_plan])

        assert result.exit_code == 1
        assert "Unknown log level" in result.output


class TestParseCommand:
    """planview parse."""

    def test_tree_output(self, runner: CliRunner, cte_plan: str) -> None:
        result = runner.invoke(app, ["parse", cte_plan])

        assert result.exit_code == 0
        assert "Hash Join" in result.output
        assert "Shared subplans" in result.output
        assert "Seq Scan on orders" in result.output

    def test_json_output(self, runner: CliRunner, cte_plan: str) -> None:
        result = runner.invoke(app, ["parse", "--json", cte_plan])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["root"]["operation"] == "Hash Join"
        assert list(data["sharedSubplans"]) == ["recent"]
        assert data["executionTime"] == 0.612

    def test_stdin(self, runner: CliRunner) -> None:
        result = runner.invoke(
            app,
            ["parse", "--json", "-"],
            input="Seq Scan on t  (cost=0.00..1.00 rows=1 width=4)\n",
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["root"]["totalCost"] == 1.0

    def test_explicit_dialect(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["parse", "--json", "--dialect", "text", "-"], input="[not json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dialect"] == "text"
        assert data["root"]["operation"] == "[not json"

    def test_malformed_plan_shows_escaped_source(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["parse", "-"], input='[red]{"Plan": ')

        assert result.exit_code == 1
        assert "Invalid JSON format" in result.output
        assert '[red]{"Plan":' in result.output

    def test_strict_limits(self, runner: CliRunner) -> None:
        text = "\n".join(" " * i + f"Node {i}" for i in range(60))
        result = runner.invoke(app, ["parse", "--strict", "-"], input=text)

        assert result.exit_code == 1
        assert "too deeply nested" in result.output

    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["parse", str(tmp_path / "absent.txt")])

        assert result.exit_code == 1
        assert "File not found" in result.output


class TestNormalizeAndDetect:
    """planview normalize / detect."""

    def test_normalize(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["normalize", "-"], input="Some Plan\n(8 rows)\n")

        assert result.exit_code == 0
        assert result.stdout == "Some Plan\n"

    def test_detect_file(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["detect", str(FIXTURES_DIR / "mysql_tabular.txt")])

        assert result.exit_code == 0
        assert result.stdout.strip() == "tabular"

    def test_detect_json(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["detect", "-"], input='[{"Plan": {}}]')
        assert result.stdout.strip() == "json"

    def test_detect_empty(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["detect", "-"], input="+---+\n")
        assert result.exit_code == 1
