"""Shared utilities: exceptions, logging, statistics and task tracking."""

from __future__ import annotations

from webemitter.utils.exceptions import (
    ConfigurationError,
    ListenerError,
    NetworkError,
    PeerRejectedError,
    ProtocolError,
    SerializationError,
    TransportError,
    ValidationError,
    WebEmitterError,
)
from webemitter.utils.logging_config import LoggingContext, get_logger, setup_logging
from webemitter.utils.stats import EmitterStats
from webemitter.utils.tasks import BackgroundTaskGroup

__all__ = [
    # Exceptions
    "ConfigurationError",
    "ListenerError",
    "NetworkError",
    "PeerRejectedError",
    "ProtocolError",
    "SerializationError",
    "TransportError",
    "ValidationError",
    "WebEmitterError",
    # Logging
    "LoggingContext",
    "get_logger",
    "setup_logging",
    # Diagnostics
    "BackgroundTaskGroup",
    "EmitterStats",
]
