"""Tests for ConfigManager and load_config."""

from __future__ import annotations

import pytest
import toml

from webemitter.config import ConfigManager, load_config
from webemitter.models import LogLevel
from webemitter.utils.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit]


@pytest.fixture
def config_file(tmp_path):
    """Write a TOML configuration file."""
    path = tmp_path / "custom.toml"
    path.write_text(
        """
name = "from-file"
keepalive_interval = 30

[http_server]
host = "127.0.0.1"
port = 9300

[observability]
log_level = "WARNING"
""",
        encoding="utf-8",
    )
    return path


def test_defaults_without_file():
    """No file and no environment gives the model defaults."""
    manager = ConfigManager()
    assert manager.config_file is None
    assert manager.config.http_server.port == 9192


def test_explicit_file(config_file):
    """Values are read from an explicit TOML file."""
    config = ConfigManager(config_file).config
    assert config.name == "from-file"
    assert config.keepalive_interval == 30.0
    assert config.http_server.host == "127.0.0.1"
    assert config.http_server.port == 9300
    assert config.observability.log_level is LogLevel.WARNING


def test_missing_explicit_file(tmp_path):
    """A named file that does not exist is an error."""
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigManager(tmp_path / "missing.toml")


def test_file_found_in_cwd(tmp_path):
    """webemitter.toml in the working directory is picked up."""
    (tmp_path / "webemitter.toml").write_text('name = "cwd"\n', encoding="utf-8")
    manager = ConfigManager()
    assert manager.config_file == tmp_path / "webemitter.toml"
    assert manager.config.name == "cwd"


def test_environment_overrides_file(config_file, monkeypatch):
    """WEBEMITTER_* variables win over the file."""
    monkeypatch.setenv("WEBEMITTER_PORT", "9400")
    monkeypatch.setenv("WEBEMITTER_SECRET", "12345")
    monkeypatch.setenv("WEBEMITTER_PROBE_TIMEOUT", "0.25")
    monkeypatch.setenv("WEBEMITTER_STRUCTURED_LOGGING", "false")
    config = ConfigManager(config_file).config
    assert config.http_server.port == 9400
    assert config.http_server.host == "127.0.0.1"
    assert config.secret == "12345"
    assert config.probe_timeout == 0.25
    assert config.observability.structured_logging is False


def test_invalid_file_contents(tmp_path):
    """Unparseable TOML raises ConfigurationError."""
    path = tmp_path / "broken.toml"
    path.write_text("name = [unterminated", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path)


def test_invalid_values(tmp_path):
    """Values that fail validation raise ConfigurationError."""
    path = tmp_path / "invalid.toml"
    path.write_text("[http_server]\nport = -1\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path)


def test_load_config_applies_overrides(config_file):
    """Caller overrides are applied last."""
    config = load_config(config_file, port=0, connect_to="http://peer:9192")
    assert config.http_server.port == 0
    assert config.http_server.host == "127.0.0.1"
    assert config.connect_to == "http://peer:9192"


def test_export_redacts_secret(monkeypatch):
    """Exported TOML never contains the secret."""
    monkeypatch.setenv("WEBEMITTER_SECRET", "hunter2")
    exported = ConfigManager().export()
    assert "hunter2" not in exported
    assert toml.loads(exported)["secret"] == "***"
