"""Config Loader - Loads engine configuration from YAML.

Supports ${ENV_VAR} substitution so tokens can stay out of the file:

    base_url: https://api.github.com
    token: ${GITHUB_TOKEN}
    timeout: 20
    retry:
      max_retries: 5
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ghrequest.models import EngineConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_engine_config(config_path: Path) -> EngineConfig:
    """Load engine configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return EngineConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def apply_overrides(config: EngineConfig, **overrides: Any) -> EngineConfig:
    """Return a copy of ``config`` with non-None overrides applied.

    ``max_retries`` is routed into the nested retry settings. The result is
    revalidated, so bad override values raise ConfigError.
    """
    values = config.model_dump()
    for key, value in overrides.items():
        if value is None:
            continue
        if key == "max_retries":
            values["retry"]["max_retries"] = value
        else:
            values[key] = value

    try:
        return EngineConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration override: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
