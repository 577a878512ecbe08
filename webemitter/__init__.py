"""webemitter - an event emitter shared by several processes over HTTP."""

from __future__ import annotations

__version__ = "0.1.0"

from webemitter.events.codec import Token
from webemitter.models import EmitterConfig
from webemitter.node import WebEventEmitter
from webemitter.protocol import NetworkState, NodeState
from webemitter.utils.exceptions import (
    ConfigurationError,
    ListenerError,
    PeerRejectedError,
    ProtocolError,
    SerializationError,
    TransportError,
    WebEmitterError,
)

__all__ = [
    "ConfigurationError",
    "EmitterConfig",
    "ListenerError",
    "NetworkState",
    "NodeState",
    "PeerRejectedError",
    "ProtocolError",
    "SerializationError",
    "Token",
    "TransportError",
    "WebEmitterError",
    "WebEventEmitter",
    "__version__",
]
