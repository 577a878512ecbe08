"""Wire protocol shared by the HTTP server and PeerClient.

Defines route names, the authentication header, node/network states, the
emission Envelope and the JSON bodies of the three node operations.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

from webemitter.events.codec import EventCodec, EventIdentifier, EventKey, default_codec
from webemitter.utils.exceptions import SerializationError

# Routes, relative to a node's base URL
STATUS_PATH = "status"
EMIT_PATH = "emit"
EVENT_NAMES_PATH = "event-names"

AUTH_HEADER = "Authorization"
AUTH_SCHEME = "Bearer"


class NodeState(str, Enum):
    """Lifecycle state of a single node."""

    STARTING = "STARTING"
    RUNNING = "RUNNING"
    CLOSING = "CLOSING"
    ERROR = "ERROR"


class NetworkState(str, Enum):
    """Reachability of the peers seen in the last synchronization."""

    HEALTHY = "HEALTHY"
    PARTIAL = "PARTIAL"
    DOWN = "DOWN"


def ensure_plain_data(value: Any, path: str = "args") -> None:
    """Raise SerializationError unless ``value`` is JSON-representable plain data.

    Accepted: None, bool, int, finite float, str, list/tuple and dict with
    string keys, recursively. Functions, arbitrary objects, bytes, sets and
    self-referencing containers are rejected.
    """
    _check_plain(value, path, set())


def _check_plain(value: Any, path: str, seen: set[int]) -> None:
    if value is None or isinstance(value, (bool, int, str)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            msg = f"{path} is a non-finite float ({value!r})"
            raise SerializationError(msg, {"path": path})
        return
    if isinstance(value, (list, tuple, dict)):
        if id(value) in seen:
            msg = f"{path} contains a reference cycle"
            raise SerializationError(msg, {"path": path})
        seen.add(id(value))
        try:
            if isinstance(value, dict):
                for k, v in value.items():
                    if not isinstance(k, str):
                        msg = f"{path} has a non-string key {k!r}"
                        raise SerializationError(msg, {"path": path})
                    _check_plain(v, f"{path}[{k!r}]", seen)
            else:
                for i, v in enumerate(value):
                    _check_plain(v, f"{path}[{i}]", seen)
        finally:
            seen.discard(id(value))
        return
    msg = f"{path} is not plain data ({type(value).__name__})"
    raise SerializationError(msg, {"path": path, "type": type(value).__name__})


class Envelope(BaseModel):
    """One event emission as sent to peers."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Event name or token display text")
    is_symbol: bool = Field(False, description="Whether the name denotes a token")
    args: tuple[Any, ...] = Field(default=(), description="Listener arguments")

    @classmethod
    def build(
        cls,
        event: EventIdentifier | EventKey,
        args: list[Any] | tuple[Any, ...] = (),
        codec: EventCodec | None = None,
    ) -> Envelope:
        """Validate ``args`` and encode ``event``.

        Raises:
            SerializationError: If any argument is not plain data

        """
        ensure_plain_data(list(args))
        name, is_symbol = (codec or default_codec).encode(event)
        return cls(name=name, is_symbol=is_symbol, args=tuple(args))

    def to_request(self) -> EmitRequest:
        """Convert to the emit request body."""
        return EmitRequest(event=self.name, symbol=self.is_symbol, args=list(self.args))


class EmitRequest(BaseModel):
    """Body of POST emit."""

    event: StrictStr = Field(..., description="Event name")
    symbol: StrictBool = Field(False, description="Resolve the name as a shared token")
    args: list[Any] = Field(default_factory=list, description="Listener arguments")


class EmitResponse(BaseModel):
    """Successful answer to POST emit."""

    model_config = ConfigDict(populate_by_name=True)

    success: StrictBool = Field(True, description="Request was handled")
    had_listeners: StrictBool = Field(
        ..., alias="hadListeners", description="The node had local listeners"
    )


class ErrorResponse(BaseModel):
    """Failure answer to any operation."""

    success: StrictBool = Field(False, description="Always false")
    reason: str = Field(..., description="Human readable failure reason")


class EventNameInfo(BaseModel):
    """One listened event as reported in a status body."""

    event: StrictStr = Field(..., description="Event name or token display text")
    symbol: StrictBool = Field(False, description="Whether the name denotes a token")


class StatusResponse(BaseModel):
    """Body of GET status."""

    model_config = ConfigDict(populate_by_name=True)

    success: StrictBool = Field(True, description="Request was handled")
    node_status: NodeState = Field(..., alias="nodeStatus", description="Node state")
    network_status: NetworkState = Field(
        ..., alias="networkStatus", description="Network state"
    )
    servers: list[StrictStr] = Field(
        default_factory=list, description="Known peer addresses, including the node itself"
    )
    event_names: list[EventNameInfo] = Field(
        default_factory=list, alias="eventNames", description="Events with listeners"
    )


class EventNamesResponse(BaseModel):
    """Body of GET event-names."""

    success: StrictBool = Field(True, description="Request was handled")
    events: list[StrictStr] = Field(default_factory=list, description="Event names")
    symbols: list[StrictBool] | None = Field(
        default=None, description="Per-name token flag, parallel to events"
    )
