"""Event identifiers, wire codec and the in-process listener bus."""

from __future__ import annotations

from webemitter.events.bus import ListenerHandle, LocalEventBus
from webemitter.events.codec import (
    EventCodec,
    EventIdentifier,
    EventKey,
    PlainName,
    SharedToken,
    Token,
    TokenRegistry,
    decode,
    default_registry,
    encode,
    to_event_key,
)

__all__ = [
    "EventCodec",
    "EventIdentifier",
    "EventKey",
    "ListenerHandle",
    "LocalEventBus",
    "PlainName",
    "SharedToken",
    "Token",
    "TokenRegistry",
    "decode",
    "default_registry",
    "encode",
    "to_event_key",
]
