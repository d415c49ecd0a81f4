"""Tests for environment and file based configuration."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from planview.config import (
    Config,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)
from planview.exceptions import ConfigurationError
from planview.parser import Dialect, ParserConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Start every test without PLANVIEW_* variables or a cached config."""
    for name in (
        "PLANVIEW_MAX_SOURCE_CHARS",
        "PLANVIEW_MAX_NODES",
        "PLANVIEW_MAX_DEPTH",
        "PLANVIEW_DEFAULT_DIALECT",
        "PLANVIEW_LOG_LEVEL",
        "PLANVIEW_CONFIG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestDefaults:
    """Config with no environment."""

    def test_defaults(self) -> None:
        config = load_config_from_env()

        assert config == Config()
        assert config.max_source_chars == 5_000_000
        assert config.max_nodes == 50_000
        assert config.max_depth == 100
        assert config.default_dialect is None
        assert config.log_level == "WARNING"

    def test_parser_config(self) -> None:
        config = Config(max_source_chars=1000, max_nodes=10, max_depth=5)

        assert config.parser_config() == ParserConfig(max_source_chars=1000, max_nodes=10, max_depth=5)


class TestLoadFromEnv:
    """PLANVIEW_* variables."""

    def test_reads_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANVIEW_MAX_NODES", "500")
        monkeypatch.setenv("PLANVIEW_MAX_DEPTH", "20")
        monkeypatch.setenv("PLANVIEW_DEFAULT_DIALECT", "JSON")
        monkeypatch.setenv("PLANVIEW_LOG_LEVEL", "debug")

        config = load_config_from_env()

        assert config.max_nodes == 500
        assert config.max_depth == 20
        assert config.default_dialect is Dialect.JSON
        assert config.log_level == "DEBUG"

    def test_unparseable_int_falls_back(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("PLANVIEW_MAX_NODES", "lots")

        with caplog.at_level(logging.WARNING, logger="planview"):
            config = load_config_from_env()

        assert config.max_nodes == 50_000
        assert "PLANVIEW_MAX_NODES" in caplog.text

    def test_unknown_dialect_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANVIEW_DEFAULT_DIALECT", "xml")
        assert load_config_from_env().default_dialect is None

    def test_unknown_log_level_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANVIEW_LOG_LEVEL", "loud")
        assert load_config_from_env().log_level == "WARNING"

    def test_invalid_value_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANVIEW_MAX_DEPTH", "0")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_env()

        assert exc_info.value.config_key == "max_depth"


class TestLoadFromFile:
    """JSON and YAML config files."""

    def test_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.json"
        path.write_text(json.dumps({"max_nodes": 123, "default_dialect": "tabular"}))

        config = load_config_from_file(path)

        assert config.max_nodes == 123
        assert config.default_dialect is Dialect.TABULAR

    def test_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.yaml"
        path.write_text("max_depth: 12\nlog_level: INFO\n")

        config = load_config_from_file(path)

        assert config.max_depth == 12
        assert config.log_level == "INFO"

    def test_empty_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.yml"
        path.write_text("")

        assert load_config_from_file(path) == Config()

    def test_missing_file_uses_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANVIEW_MAX_NODES", "77")
        assert load_config_from_file(tmp_path / "absent.json").max_nodes == 77

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            load_config_from_file(path)

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.yaml"
        path.write_text("max_depth: [1, 2\n")

        with pytest.raises(ConfigurationError):
            load_config_from_file(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigurationError):
            load_config_from_file(path)

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = tmp_path / "planview.json"
        path.write_text(json.dumps({"max_nodes": -1}))

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_file(path)

        assert exc_info.value.config_key == "max_nodes"


class TestGetConfig:
    """Cached global config."""

    def test_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_config()
        monkeypatch.setenv("PLANVIEW_MAX_NODES", "9")

        assert get_config() is first

        reset_config()
        assert get_config().max_nodes == 9

    def test_config_file_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "planview.yaml"
        path.write_text("max_source_chars: 4096\n")
        monkeypatch.setenv("PLANVIEW_CONFIG_FILE", str(path))

        assert get_config().max_source_chars == 4096
