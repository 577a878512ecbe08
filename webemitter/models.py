"""Pydantic models for webemitter configuration.

Configuration values are immutable: a node builds one EmitterConfig at
construction time and derives variants with ``merged`` instead of mutating.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from webemitter.utils.exceptions import ConfigurationError

_HTTP_SERVER_KEYS = ("host", "port", "base_url")


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class HttpServerConfig(BaseModel):
    """Listening options for the node's HTTP endpoint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = Field(default="localhost", description="Host or address to bind to")
    port: int = Field(
        default=9192,
        ge=0,
        le=65535,
        description="Port to listen on (0 picks a free port)",
    )
    base_url: str | None = Field(
        default=None,
        description="Externally reachable URL announced to peers (overrides host/port)",
    )

    @field_validator("base_url", mode="before")
    @classmethod
    def _empty_base_url_is_unset(cls, v: Any) -> Any:
        if v == "":
            return None
        return v


class ObservabilityConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(default=None, description="Log file path")
    structured_logging: bool = Field(
        default=True, description="Write JSON records to the log file"
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class EmitterConfig(BaseModel):
    """Main configuration model for one node."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = Field(default=None, description="Display name of this node")
    secret: str | None = Field(
        default=None,
        description="Shared secret required on every request between nodes",
    )
    connect_to: str | None = Field(
        default=None,
        description="Address of a node used to join the network",
    )
    keepalive_interval: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between peer synchronization cycles",
    )
    probe_timeout: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Timeout in seconds for one liveness probe",
    )
    request_timeout: float = Field(
        default=5.0,
        gt=0.0,
        le=300.0,
        description="Timeout in seconds for one emit/status/event-names request",
    )
    http_server: HttpServerConfig = Field(
        default_factory=HttpServerConfig,
        description="HTTP server configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Logging configuration",
    )

    @field_validator("connect_to", "secret", mode="before")
    @classmethod
    def _empty_is_unset(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    @field_validator("connect_to")
    @classmethod
    def _validate_connect_to(cls, v: str | None) -> str | None:
        if v is not None and not v.lower().startswith(("http://", "https://")):
            msg = f"connect_to must be an http(s) URL, got {v!r}"
            raise ValueError(msg)
        return v

    @classmethod
    def from_options(cls, **options: Any) -> EmitterConfig:
        """Build a configuration from defaults plus flat or nested options."""
        return cls().merged(**options)

    def merged(self, **overrides: Any) -> EmitterConfig:
        """Return a new configuration with ``overrides`` applied.

        ``host``, ``port`` and ``base_url`` may be given flat; they are folded
        into ``http_server``. ``None`` values are ignored.
        """
        data = self.model_dump()
        http_server = dict(data["http_server"])
        for key, value in overrides.items():
            if value is None:
                continue
            if key in _HTTP_SERVER_KEYS:
                http_server[key] = value
            elif key in ("http_server", "observability") and isinstance(value, BaseModel):
                if key == "http_server":
                    http_server.update(value.model_dump())
                else:
                    data[key] = value.model_dump()
            elif key == "http_server" and isinstance(value, dict):
                http_server.update(value)
            elif key == "observability" and isinstance(value, dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        data["http_server"] = http_server

        try:
            return EmitterConfig.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e
