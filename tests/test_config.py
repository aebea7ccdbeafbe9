"""Tests for configuration management."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

import pm_lifecycle.core.config as config_module
from pm_lifecycle.core.config import CONFIG_DIR_ENV_VAR, ConfigError, ConfigLoader, get_config

EXPECTED_MAX_POSITIONS = 8
EXPECTED_INTERVAL = 10
EXPECTED_MIN_ORDER = 20


class TestConfigLoader:
    """Test suite for ConfigLoader."""

    def test_load_default_config(self) -> None:
        """Load the packaged defaults."""
        loader = ConfigLoader()
        assert loader.get("environment") is not None
        assert loader.get("lifecycle.test_mode") == "1-convergence-4-reversal"

    def test_config_dir_from_environment(self, tmp_path: Path) -> None:
        """Use PM_LIFECYCLE_CONFIG_DIR when no directory is given."""
        (tmp_path / "settings.yaml").write_text("environment: staging")

        with patch.dict(os.environ, {CONFIG_DIR_ENV_VAR: str(tmp_path)}):
            loader = ConfigLoader()
        assert loader.config_dir == tmp_path
        assert loader.get("environment") == "staging"

    def test_invalid_yaml_raises_config_error(self, tmp_path: Path) -> None:
        """Report malformed YAML as a ConfigError."""
        (tmp_path / "settings.yaml").write_text("lifecycle: [unclosed")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            ConfigLoader(config_dir=tmp_path)

    def test_non_mapping_file_raises_config_error(self, tmp_path: Path) -> None:
        """Reject a settings file whose top level is not a mapping."""
        (tmp_path / "settings.yaml").write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            ConfigLoader(config_dir=tmp_path)

    def test_get_with_dot_notation(self, tmp_path: Path) -> None:
        """Read nested values with dot notation."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
polymarket:
  gamma_api_url: https://gamma.test
  clob_api_url: https://clob.test
environment: test
""")

        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.get("polymarket.gamma_api_url") == "https://gamma.test"
        assert loader.get("polymarket.clob_api_url") == "https://clob.test"
        assert loader.get("environment") == "test"

    def test_get_with_default(self, tmp_path: Path) -> None:
        """Return the default for a missing key."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("environment: test")

        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.get("nonexistent.key", "default_value") == "default_value"

    def test_missing_directory_yields_empty_config(self, tmp_path: Path) -> None:
        """Treat a directory without settings files as empty."""
        loader = ConfigLoader(config_dir=tmp_path / "absent")
        assert loader.get("environment") is None

    def test_env_var_substitution(self, tmp_path: Path) -> None:
        """Substitute environment variables and fall back to defaults."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
lifecycle:
  test_mode: ${TEST_LIFECYCLE_MODE}
  initial_capital: ${TEST_LIFECYCLE_CAPITAL:10000}
""")

        with patch.dict(os.environ, {"TEST_LIFECYCLE_MODE": "reversal-only"}):
            loader = ConfigLoader(config_dir=tmp_path)
            assert loader.get("lifecycle.test_mode") == "reversal-only"
            assert loader.get("lifecycle.initial_capital") == "10000"

    def test_empty_default(self, tmp_path: Path) -> None:
        """Allow an empty default value."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
lifecycle:
  market_blacklist: ${NONEXISTENT_BLACKLIST_VAR:}
""")

        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.get("lifecycle.market_blacklist") == ""

    def test_local_settings_override(self, tmp_path: Path) -> None:
        """Merge settings.local.yaml over settings.yaml."""
        base_config = tmp_path / "settings.yaml"
        base_config.write_text("""
lifecycle:
  test_mode: 1-convergence-4-reversal
  max_positions: 5
environment: production
""")

        local_config = tmp_path / "settings.local.yaml"
        local_config.write_text("""
lifecycle:
  max_positions: 8
environment: development
""")

        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.get("lifecycle.max_positions") == EXPECTED_MAX_POSITIONS
        assert loader.get("lifecycle.test_mode") == "1-convergence-4-reversal"
        assert loader.get("environment") == "development"

    def test_full_string_unresolved_env_var_raises_config_error(self, tmp_path: Path) -> None:
        """Raise ConfigError when env var is unset and has no default."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
lifecycle:
  test_mode: ${NONEXISTENT_PM_LIFECYCLE_VAR}
""")

        with pytest.raises(ConfigError, match="Required environment variable"):
            ConfigLoader(config_dir=tmp_path)

    def test_embedded_env_var_reference_raises_config_error(self, tmp_path: Path) -> None:
        """Raise ConfigError when an env var reference is embedded in a larger string."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
polymarket:
  gamma_api_url: https://gamma.example.com/${NONEXISTENT_PATH_VAR}/v1
""")

        with pytest.raises(ConfigError, match="Unresolved environment variable reference"):
            ConfigLoader(config_dir=tmp_path)

    def test_deep_merge(self, tmp_path: Path) -> None:
        """Deep-merge nested sections."""
        base_config = tmp_path / "settings.yaml"
        base_config.write_text("""
lifecycle:
  update_interval_minutes: 10
  sizing:
    min_order_size: 10
    max_position_size: 0.18
""")

        local_config = tmp_path / "settings.local.yaml"
        local_config.write_text("""
lifecycle:
  sizing:
    min_order_size: 20
""")

        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.get("lifecycle.update_interval_minutes") == EXPECTED_INTERVAL
        assert loader.get("lifecycle.sizing.min_order_size") == EXPECTED_MIN_ORDER
        assert loader.get("lifecycle.sizing.max_position_size") == 0.18

    def test_get_section(self, tmp_path: Path) -> None:
        """Return a section as a dict, or an empty dict when absent."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
lifecycle:
  max_positions: 5
""")

        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.get_section("lifecycle") == {"max_positions": 5}
        assert loader.get_section("missing") == {}

    def test_get_section_rejects_scalar(self, tmp_path: Path) -> None:
        """Raise ConfigError when the section is not a mapping."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("lifecycle: 5")

        loader = ConfigLoader(config_dir=tmp_path)
        with pytest.raises(ConfigError, match="must be a dict"):
            loader.get_section("lifecycle")


class TestGetConfig:
    """Test suite for the lazy singleton get_config() function."""

    def test_returns_config_loader_instance(self) -> None:
        """Return a ConfigLoader instance on first call."""
        config_module._config = None
        try:
            result = get_config()
            assert isinstance(result, ConfigLoader)
        finally:
            config_module._config = None

    def test_returns_same_instance(self) -> None:
        """Return the same ConfigLoader on subsequent calls."""
        config_module._config = None
        try:
            first = get_config()
            second = get_config()
            assert first is second
        finally:
            config_module._config = None
