"""Exception hierarchy for webemitter.

Every error raised by the package derives from WebEmitterError so callers can
catch the whole family at once, or pick out the transport, protocol and
validation cases they care about.
"""

from __future__ import annotations

from typing import Any


class WebEmitterError(Exception):
    """Base exception for all webemitter errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize webemitter error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(WebEmitterError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration errors, including an address that cannot be resolved."""


class SerializationError(ValidationError):
    """Emit payload is not representable as plain data."""


class NetworkError(WebEmitterError):
    """Network-related errors."""


class TransportError(NetworkError):
    """Network failure, timeout or HTTP error status against a peer."""


class ProtocolError(WebEmitterError):
    """Malformed or unexpected response from a peer."""


class PeerRejectedError(ProtocolError):
    """Peer answered with an explicit ``success: false``."""


class ListenerError(WebEmitterError):
    """A registered listener raised during dispatch."""

    def __init__(
        self,
        message: str,
        event: Any = None,
        listener: Any = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize listener error."""
        super().__init__(message, details)
        self.event = event
        self.listener = listener
