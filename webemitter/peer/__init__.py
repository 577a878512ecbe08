"""Peer addressing, the per-peer HTTP client and the peer registry."""

from __future__ import annotations

from webemitter.peer.address import PeerSet, normalize_address, resolve_base_url
from webemitter.peer.client import PeerClient
from webemitter.peer.registry import PeerRegistry, SyncResult

__all__ = [
    "PeerClient",
    "PeerRegistry",
    "PeerSet",
    "SyncResult",
    "normalize_address",
    "resolve_base_url",
]
