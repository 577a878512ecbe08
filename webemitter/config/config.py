"""Configuration management for webemitter.

Configuration is resolved hierarchically: defaults → TOML file → environment
→ caller overrides. The result is a frozen EmitterConfig; nothing here keeps
process-wide mutable defaults.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from webemitter.models import EmitterConfig
from webemitter.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "webemitter.toml"

ENV_MAPPINGS: dict[str, str] = {
    "WEBEMITTER_NAME": "name",
    "WEBEMITTER_SECRET": "secret",
    "WEBEMITTER_CONNECT_TO": "connect_to",
    "WEBEMITTER_KEEPALIVE_INTERVAL": "keepalive_interval",
    "WEBEMITTER_PROBE_TIMEOUT": "probe_timeout",
    "WEBEMITTER_REQUEST_TIMEOUT": "request_timeout",
    "WEBEMITTER_HOST": "http_server.host",
    "WEBEMITTER_PORT": "http_server.port",
    "WEBEMITTER_BASE_URL": "http_server.base_url",
    "WEBEMITTER_LOG_LEVEL": "observability.log_level",
    "WEBEMITTER_LOG_FILE": "observability.log_file",
    "WEBEMITTER_STRUCTURED_LOGGING": "observability.structured_logging",
}

# Keys whose environment values must stay strings even when they look numeric.
_STRING_PATHS = frozenset(
    {
        "name",
        "secret",
        "connect_to",
        "http_server.host",
        "http_server.base_url",
        "observability.log_level",
        "observability.log_file",
    }
)


class ConfigManager:
    """Loads and validates configuration from file and environment."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for webemitter.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            path = Path(config_file)
            if not path.exists():
                msg = f"Config file not found: {path}"
                raise ConfigurationError(msg)
            return path

        search_paths = [
            Path.cwd() / CONFIG_FILENAME,
            Path.home() / ".config" / "webemitter" / CONFIG_FILENAME,
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> EmitterConfig:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e
            logger.debug("Loaded configuration from %s", self.config_file)

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return EmitterConfig.model_validate(config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str:
            if path in _STRING_PATHS:
                return raw
            low = raw.lower()
            if low in {"true", "1", "yes", "on"}:
                return True
            if low in {"false", "0", "no", "off"}:
                return False
            try:
                if "." in raw:
                    return float(raw)
                return int(raw)
            except ValueError:
                return raw

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self) -> str:
        """Export the current configuration as TOML (secret redacted)."""
        data = self.config.model_dump(mode="json", exclude_none=True)
        if "secret" in data:
            data["secret"] = "***"
        return toml.dumps(data)


def load_config(config_file: str | Path | None = None, **overrides: Any) -> EmitterConfig:
    """Load configuration from file/environment and apply caller overrides."""
    return ConfigManager(config_file).config.merged(**overrides)
