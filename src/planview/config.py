"""
Configuration system for planview.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional JSON/YAML config file for local development
- Parser resource limits and CLI defaults in one frozen model

Usage:
    from planview.config import get_config

    config = get_config()
    document = parse_plan(text, config=config.parser_config())
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planview.exceptions import ConfigurationError
from planview.parser.config import ParserConfig
from planview.parser.models import Dialect

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLANVIEW_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config(BaseModel):
    """
    planview configuration.

    Loaded from environment variables and optional config file.
    """

    model_config = ConfigDict(frozen=True)

    max_source_chars: int = Field(
        default=5_000_000,
        gt=0,
        description="Maximum raw plan text length in characters",
    )
    max_nodes: int = Field(
        default=50_000,
        gt=0,
        description="Maximum number of plan nodes",
    )
    max_depth: int = Field(
        default=100,
        gt=0,
        description="Maximum plan nesting depth",
    )
    default_dialect: Dialect | None = Field(
        default=None,
        description="Dialect to assume instead of auto-detection",
    )
    log_level: str = Field(
        default="WARNING",
        description="Log level used by the command line front end",
    )

    def parser_config(self) -> ParserConfig:
        """Resource limits for the parser."""
        return ParserConfig(
            max_source_chars=self.max_source_chars,
            max_nodes=self.max_nodes,
            max_depth=self.max_depth,
        )


def _parse_env_int(key: str, default: int) -> int:
    """Parse integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %d", key, value, default)
        return default


def _parse_env_dialect(key: str) -> Dialect | None:
    value = os.environ.get(key)
    if not value:
        return None
    try:
        return Dialect(value.lower())
    except ValueError:
        logger.warning("Unknown dialect %s=%s, using auto-detection", key, value)
        return None


def _parse_env_log_level(key: str, default: str) -> str:
    value = os.environ.get(key)
    if value is None:
        return default
    if value.upper() not in LOG_LEVELS:
        logger.warning("Unknown log level %s=%s, using %s", key, value, default)
        return default
    return value.upper()


def _build(values: dict[str, Any]) -> Config:
    try:
        return Config(**values)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(x) for x in first["loc"]) or None
        raise ConfigurationError(
            f"Invalid configuration: {key}: {first['msg']}",
            config_key=key,
        ) from e


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Variables:
    - PLANVIEW_MAX_SOURCE_CHARS
    - PLANVIEW_MAX_NODES
    - PLANVIEW_MAX_DEPTH
    - PLANVIEW_DEFAULT_DIALECT (text, json, tabular)
    - PLANVIEW_LOG_LEVEL

    Unparseable values fall back to defaults with a logged warning.
    """
    return _build({
        "max_source_chars": _parse_env_int(f"{ENV_PREFIX}MAX_SOURCE_CHARS", 5_000_000),
        "max_nodes": _parse_env_int(f"{ENV_PREFIX}MAX_NODES", 50_000),
        "max_depth": _parse_env_int(f"{ENV_PREFIX}MAX_DEPTH", 100),
        "default_dialect": _parse_env_dialect(f"{ENV_PREFIX}DEFAULT_DIALECT"),
        "log_level": _parse_env_log_level(f"{ENV_PREFIX}LOG_LEVEL", "WARNING"),
    })


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file does not exist.

    Raises:
        ConfigurationError: If the file is unreadable or holds invalid values
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}",
        )

    return _build(data)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. PLANVIEW_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
