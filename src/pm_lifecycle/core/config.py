"""Configuration management for the lifecycle engine.

Settings live in ``settings.yaml`` with an optional ``settings.local.yaml``
merged over it. Scalar values of the form ``${VAR}`` or ``${VAR:default}``
are replaced from the environment after a ``.env`` file has been loaded.
The directory can be moved with ``PM_LIFECYCLE_CONFIG_DIR``.
"""

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

CONFIG_DIR_ENV_VAR = "PM_LIFECYCLE_CONFIG_DIR"

_PACKAGED_CONFIG_DIR = Path(__file__).parent.parent / "config"
_SETTINGS_FILE = "settings.yaml"
_LOCAL_SETTINGS_FILE = "settings.local.yaml"
_FULL_REFERENCE = re.compile(r"^\$\{(?P<name>[^}:]+)(?::(?P<default>[^}]*))?\}$")
_ANY_REFERENCE = re.compile(r"\$\{[^}]+\}")


class ConfigError(Exception):
    """Raise when configuration loading or validation fails."""


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read one YAML mapping, treating a missing or empty file as ``{}``."""
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML in {path}: {exc}"
        raise ConfigError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path} must contain a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return cast("dict[str, Any]", data)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Merge ``override`` into ``base`` in place, recursing into nested mappings."""
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _deep_merge(cast("dict[str, Any]", current), cast("dict[str, Any]", value))
        else:
            base[key] = value


def _resolve(value: Any) -> Any:
    """Replace ``${VAR:default}`` references throughout a parsed YAML tree.

    Raises:
        ConfigError: If a required variable is unset or a reference is
            embedded inside a larger string.

    """
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in cast("dict[str, Any]", value).items()}
    if isinstance(value, list):
        return [_resolve(item) for item in cast("list[Any]", value)]
    if not isinstance(value, str):
        return value

    match = _FULL_REFERENCE.match(value)
    if match is not None:
        name = match.group("name")
        resolved = os.getenv(name, match.group("default"))
        if resolved is None:
            msg = f"Required environment variable ${{{name}}} is not set and has no default"
            raise ConfigError(msg)
        return resolved
    if _ANY_REFERENCE.search(value):
        msg = f"Unresolved environment variable reference in: {value}"
        raise ConfigError(msg)
    return value


class ConfigLoader:
    """Read lifecycle settings from a config directory.

    Args:
        config_dir: Directory holding ``settings.yaml``. Defaults to
            ``$PM_LIFECYCLE_CONFIG_DIR`` or the packaged ``config`` directory.

    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """Load ``.env`` and the YAML settings."""
        load_dotenv()
        if config_dir is None:
            override = os.getenv(CONFIG_DIR_ENV_VAR)
            config_dir = Path(override) if override else _PACKAGED_CONFIG_DIR
        self.config_dir = Path(config_dir)
        self._config = self._load()

    def _load(self) -> dict[str, Any]:
        settings = _read_yaml(self.config_dir / _SETTINGS_FILE)
        _deep_merge(settings, _read_yaml(self.config_dir / _LOCAL_SETTINGS_FILE))
        return cast("dict[str, Any]", _resolve(settings))

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at a dot-notation key such as ``lifecycle.max_positions``.

        Missing keys, and keys whose value is ``null``, yield ``default``.
        """
        current: Any = self._config
        for part in key.split("."):
            if not isinstance(current, dict):
                return default
            current = cast("dict[str, Any]", current).get(part)
            if current is None:
                return default
        return current

    def get_section(self, key: str) -> dict[str, Any]:
        """Return a configuration section as a dictionary.

        Args:
            key: Dot-notation key of the section (e.g. ``"lifecycle"``).

        Returns:
            The section contents, or an empty dict when absent.

        Raises:
            ConfigError: If the value at ``key`` is not a mapping.

        """
        section: Any = self.get(key, {})
        if not isinstance(section, dict):
            msg = f"{key} config must be a dict, got {type(section).__name__}"
            raise ConfigError(msg)
        return cast("dict[str, Any]", section)


_config: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Return the shared ``ConfigLoader``, creating it on first use."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = ConfigLoader()
    return _config
