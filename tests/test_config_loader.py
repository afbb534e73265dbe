"""Tests for YAML engine configuration loading.

Tests cover:
- Valid configs, empty files and defaults
- ${ENV_VAR} substitution and unset variables
- Invalid YAML, non-mapping content and schema violations
- Command-line style overrides
"""

from pathlib import Path

import pytest

from ghrequest.config_loader import ConfigError, apply_overrides, load_engine_config
from ghrequest.models import EngineConfig


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "engine.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadEngineConfig:
    def test_full_config(self, tmp_path: Path) -> None:
        path = write_config(
            tmp_path,
            """
base_url: https://ghe.example.com/api/v3/
token: abc
timeout: 12.5
verify_ssl: false
retry:
  max_retries: 5
  max_backoff: 30
""",
        )

        config = load_engine_config(path)

        assert config.base_url == "https://ghe.example.com/api/v3"
        assert config.token == "abc"
        assert config.timeout == 12.5
        assert config.verify_ssl is False
        assert config.retry.max_retries == 5
        assert config.retry.max_backoff == 30.0
        assert config.retry.base_delay == 1.0

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_engine_config(write_config(tmp_path, "")) == EngineConfig()

    def test_env_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GH_TEST_TOKEN", "from-env")
        monkeypatch.setenv("GH_TEST_HOST", "ghe.example.com")
        path = write_config(
            tmp_path,
            "token: ${GH_TEST_TOKEN}\nbase_url: https://${GH_TEST_HOST}/api/v3\n",
        )

        config = load_engine_config(path)

        assert config.token == "from-env"
        assert config.base_url == "https://ghe.example.com/api/v3"

    def test_unset_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GH_TEST_MISSING", raising=False)
        path = write_config(tmp_path, "token: ${GH_TEST_MISSING}\n")
        with pytest.raises(ConfigError, match="'GH_TEST_MISSING' is not set"):
            load_engine_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_engine_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_engine_config(write_config(tmp_path, "retry: [unclosed\n"))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="must be a YAML mapping"):
            load_engine_config(write_config(tmp_path, "- a\n- b\n"))

    @pytest.mark.parametrize(
        "text",
        [
            "unknown_key: 1\n",
            "timeout: 0\n",
            "base_url: api.github.com\n",
            "retry:\n  max_retries: -1\n",
        ],
    )
    def test_invalid_structure(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_engine_config(write_config(tmp_path, text))


class TestApplyOverrides:
    def test_none_values_ignored(self) -> None:
        config = EngineConfig(token="t", timeout=10)
        assert apply_overrides(config, token=None, timeout=None) == config

    def test_overrides_applied(self) -> None:
        config = apply_overrides(EngineConfig(), base_url="http://localhost:9000/", timeout=5.0)
        assert config.base_url == "http://localhost:9000"
        assert config.timeout == 5.0

    def test_max_retries_routed_to_retry(self) -> None:
        config = apply_overrides(EngineConfig(), max_retries=0)
        assert config.retry.max_retries == 0

    def test_original_untouched(self) -> None:
        original = EngineConfig()
        apply_overrides(original, max_retries=7, token="x")
        assert original.retry.max_retries == 3
        assert original.token is None

    def test_invalid_override(self) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration override"):
            apply_overrides(EngineConfig(), base_url="not-a-url")
