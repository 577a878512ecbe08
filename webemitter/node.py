"""WebEventEmitter: one node of the distributed event bus.

A node owns a local listener bus, an HTTP server that peers call into, a
peer registry that keeps the set of known nodes up to date, and a remote
emitter that fans emissions out to that set.

Example:
    async with WebEventEmitter(port=9192) as node:
        node.on("greeting", print)
        await node.connect("http://other-host:9192")
        await node.global_emit("greeting", "hello")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from webemitter.emitter import RemoteEmitter
from webemitter.events.bus import Listener, ListenerErrorCallback, ListenerHandle, LocalEventBus
from webemitter.events.codec import EventCodec, EventIdentifier, default_codec
from webemitter.models import EmitterConfig
from webemitter.peer.address import normalize_address, resolve_base_url
from webemitter.peer.client import PeerClient
from webemitter.peer.registry import PeerRegistry, SyncResult
from webemitter.protocol import NetworkState, NodeState
from webemitter.server import EmitterServer
from webemitter.status import StatusResponder, StatusSnapshot
from webemitter.utils.exceptions import ConfigurationError, TransportError, WebEmitterError
from webemitter.utils.stats import EmitterStats

logger = logging.getLogger(__name__)


class WebEventEmitter:
    """Event emitter whose listeners may live on other nodes."""

    def __init__(
        self,
        config: EmitterConfig | None = None,
        *,
        codec: EventCodec | None = None,
        on_listener_error: ListenerErrorCallback | None = None,
        **options: Any,
    ):
        """Initialize a node. It serves nothing until ``listen`` is awaited.

        Args:
            config: Base configuration (defaults if None)
            codec: Event name codec (the process-wide one if None)
            on_listener_error: Called for every listener that raises
            **options: Configuration overrides, e.g. ``port=0`` or ``connect_to=...``

        Raises:
            ConfigurationError: If the resulting configuration is invalid

        """
        base = config or EmitterConfig()
        self.config = base.merged(**options) if options else base
        self.codec = codec or default_codec
        self.stats = EmitterStats()

        self.bus = LocalEventBus(on_listener_error=on_listener_error, stats=self.stats)
        self.registry = PeerRegistry(
            self_address=self._reachable_address,
            client_factory=self._client_for,
            bootstrap=self.config.connect_to,
            interval=self.config.keepalive_interval,
            probe_timeout=self.config.probe_timeout,
            stats=self.stats,
        )
        self.responder = StatusResponder(self.bus, self.registry, codec=self.codec)
        self.emitter = RemoteEmitter(
            self.bus,
            self.registry,
            client_factory=self._client_for,
            self_address=self._own_address,
            codec=self.codec,
            stats=self.stats,
        )

        self.server: EmitterServer | None = None
        self._address: str | None = None
        self._session: aiohttp.ClientSession | None = None
        self._clients: dict[str, PeerClient] = {}
        self._closed = False

    def __repr__(self) -> str:
        """Return a debugging representation."""
        return (
            f"WebEventEmitter(name={self.name!r}, address={self._address!r}, "
            f"state={self.responder.node_state.value})"
        )

    @property
    def name(self) -> str | None:
        """Display name of this node."""
        return self.config.name

    @classmethod
    async def create(cls, config: EmitterConfig | None = None, **options: Any) -> WebEventEmitter:
        """Construct a node and start listening."""
        node = cls(config, **options)
        await node.listen()
        return node

    async def __aenter__(self) -> WebEventEmitter:
        """Listen on entry."""
        await self.listen()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close on exit."""
        await self.close()

    # Local bus

    def on(self, event: EventIdentifier, listener: Listener) -> ListenerHandle:
        """Register ``listener`` for ``event``."""
        return self.bus.register(event, listener)

    def once(self, event: EventIdentifier, listener: Listener) -> ListenerHandle:
        """Register ``listener`` for the next occurrence of ``event`` only."""
        return self.bus.register(event, listener, once=True)

    def off(self, event: EventIdentifier, listener: Listener) -> bool:
        """Remove ``listener`` from ``event``. Returns False if it was not registered."""
        return self.bus.remove_listener(event, listener)

    def remove_all_listeners(self, event: EventIdentifier | None = None) -> None:
        """Remove every listener, or every listener of ``event``."""
        self.bus.clear(event)

    def listener_count(self, event: EventIdentifier) -> int:
        """Number of local listeners for ``event``."""
        return self.bus.listener_count(event)

    def event_names(self) -> list[EventIdentifier]:
        """Identifiers of events with local listeners."""
        return [key.identifier for key in self.bus.listened_names()]

    def local_emit(self, event: EventIdentifier, *args: Any) -> bool:
        """Dispatch on this node only. Arguments need not be plain data."""
        return self.bus.dispatch(event, args)

    # Network emission

    def emit(self, event: EventIdentifier, *args: Any) -> bool:
        """Dispatch locally and send to every peer in the background.

        Returns:
            Whether this node had listeners

        Raises:
            SerializationError: If any argument is not plain data

        """
        return self.emitter.emit(event, *args)

    async def global_emit(self, event: EventIdentifier, *args: Any) -> bool:
        """Dispatch locally and on every peer.

        Returns:
            True if any node (this one included) had listeners

        Raises:
            SerializationError: If any argument is not plain data

        """
        return await self.emitter.global_emit(event, *args)

    # Lifecycle

    async def listen(self) -> str:
        """Start the HTTP server, join the network and start periodic sync.

        Returns:
            This node's resolved address

        Raises:
            TransportError: If the server cannot bind
            ConfigurationError: If no usable address can be resolved

        """
        if self._closed:
            msg = "Node has been closed"
            raise ConfigurationError(msg)
        if self._address is not None:
            return self._address

        http = self.config.http_server
        self.server = EmitterServer(
            self.bus,
            self.responder,
            host=http.host,
            port=http.port,
            secret=self.config.secret,
            codec=self.codec,
        )
        try:
            bound_port = await self.server.start()
            self._address = resolve_base_url(http.base_url, http.host, bound_port)
        except WebEmitterError:
            self.responder.mark_error()
            await self.server.stop()
            self.server = None
            raise

        self.responder.mark_running()
        logger.info("Node %s listening at %s", self.name or "<unnamed>", self._address)

        await self.registry.sync()
        if self.config.connect_to:
            result = await self.registry.sync(seed=self.config.connect_to)
            if not result.reachable:
                logger.warning("Bootstrap peer %s is not reachable", self.config.connect_to)
        await self.registry.start(immediate=False)
        return self._address

    async def close(self) -> None:
        """Shut the node down. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.responder.mark_closing()

        await self.emitter.close()
        await self.registry.stop()
        if self.server is not None:
            await self.server.stop()
        self._clients.clear()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("Node %s closed", self._address or self.name or "<unnamed>")

    # Peers

    def address(self) -> str:
        """This node's externally reachable address.

        Raises:
            ConfigurationError: If the node is not listening and no
                ``base_url`` is configured

        """
        if self._address is not None:
            return self._address
        http = self.config.http_server
        return resolve_base_url(http.base_url, http.host, None)

    def _reachable_address(self) -> str | None:
        if self.responder.node_state is NodeState.RUNNING:
            return self._address
        return None

    def _own_address(self) -> str | None:
        return self._address

    def _shared_session(self) -> aiohttp.ClientSession:
        if self._closed:
            msg = "Node is closed"
            raise TransportError(msg)
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def _client_for(self, address: str) -> PeerClient:
        key = normalize_address(address)
        client = self._clients.get(key)
        if client is None:
            client = PeerClient(
                key,
                secret=self.config.secret,
                timeout=self.config.request_timeout,
                probe_timeout=self.config.probe_timeout,
                codec=self.codec,
                session_factory=self._shared_session,
            )
            self._clients[key] = client
        return client

    def server_list(self) -> list[str]:
        """Known node addresses, this node included once it has synced."""
        return self.registry.current_peers.to_list()

    async def sync(self) -> SyncResult:
        """Run one synchronization cycle against the current peers now.

        Raises:
            ConfigurationError: If this node has no resolvable address

        """
        self.address()
        return await self.registry.sync()

    async def connect(self, address: str) -> SyncResult:
        """Synchronize starting from ``address`` alone.

        Raises:
            ConfigurationError: If ``address`` is invalid or this node has
                no resolvable address

        """
        self.address()
        return await self.registry.sync(seed=address)

    def peer(self, address: str) -> PeerClient:
        """Client for the node at ``address``, sharing this node's HTTP session."""
        try:
            return self._client_for(address)
        except ValueError as e:
            msg = f"Invalid peer address: {e}"
            raise ConfigurationError(msg) from e

    async def remote_event_names(self) -> list[EventIdentifier]:
        """Union of the event names every reachable peer listens for.

        Unreachable peers are skipped and recorded in the statistics.
        """
        if self._closed:
            return []
        targets = self.registry.current_peers.without(self._own_address()).to_list()
        results = await asyncio.gather(
            *(self._client_for(a).remote_event_names() for a in targets),
            return_exceptions=True,
        )

        names: dict[EventIdentifier, None] = {}
        for address, result in zip(targets, results):
            if isinstance(result, WebEmitterError):
                logger.warning("Event-names query to %s failed: %s", address, result)
                self.stats.record_failure("event_names", result, target=address)
                continue
            if isinstance(result, BaseException):
                raise result
            for identifier in result:
                names.setdefault(identifier, None)
        return list(names)

    # Introspection

    def node_status(self) -> NodeState:
        """Lifecycle state of this node."""
        return self.responder.node_state

    def network_status(self) -> NetworkState:
        """Reachability of the peers seen in the last sync."""
        return self.responder.network_state

    def status(self) -> StatusSnapshot:
        """Snapshot served to peers through the status operation."""
        return self.responder.snapshot()

    def get_stats(self) -> dict[str, Any]:
        """Diagnostics: counters, recent failures and node state."""
        stats = self.stats.snapshot()
        stats.update(
            {
                "name": self.name,
                "address": self._address,
                "node_status": self.node_status().value,
                "network_status": self.network_status().value,
                "peers": self.server_list(),
                "pending_emits": self.emitter.pending,
                "listened_events": len(self.bus.listened_names()),
            }
        )
        return stats
