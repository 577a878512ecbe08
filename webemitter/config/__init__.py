"""Configuration loading for webemitter."""

from __future__ import annotations

from webemitter.config.config import ConfigManager, load_config

__all__ = ["ConfigManager", "load_config"]
