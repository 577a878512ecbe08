"""Local-then-remote event emission.

RemoteEmitter dispatches an event on the local bus, then fans it out to
every known peer concurrently. A failing peer counts as "no listeners" and
never fails the emission as a whole.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from webemitter.events.bus import LocalEventBus
from webemitter.events.codec import EventCodec, EventIdentifier, default_codec, to_event_key
from webemitter.peer.client import PeerClient
from webemitter.peer.registry import PeerRegistry
from webemitter.protocol import Envelope
from webemitter.utils.exceptions import WebEmitterError
from webemitter.utils.stats import EmitterStats
from webemitter.utils.tasks import BackgroundTaskGroup

logger = logging.getLogger(__name__)


class RemoteEmitter:
    """Fans emissions out over a PeerRegistry's current peers."""

    def __init__(
        self,
        bus: LocalEventBus,
        registry: PeerRegistry,
        client_factory: Callable[[str], PeerClient],
        self_address: Callable[[], str | None],
        codec: EventCodec | None = None,
        stats: EmitterStats | None = None,
    ):
        """Initialize remote emitter.

        Args:
            bus: Local bus dispatched to before any peer is contacted
            registry: Source of the peer snapshot used per emission
            client_factory: Returns a PeerClient for an address
            self_address: Returns this node's address, excluded from fan-out
            codec: Codec used to encode event names
            stats: Shared statistics

        """
        self.bus = bus
        self.registry = registry
        self.client_factory = client_factory
        self.self_address = self_address
        self.codec = codec or default_codec
        self.stats = stats if stats is not None else EmitterStats()
        self._pending = BackgroundTaskGroup("fan-out")
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of fire-and-forget fan-outs still in flight."""
        return len(self._pending)

    def _prepare(self, event: EventIdentifier, args: tuple[Any, ...]) -> tuple[Envelope, bool]:
        # Validation precedes both the local dispatch and any network call
        key = to_event_key(event)
        envelope = Envelope.build(key, args, codec=self.codec)
        local = self.bus.dispatch(key, args)
        return envelope, local

    def _targets(self) -> list[str]:
        if self._closed:
            return []
        return self.registry.current_peers.without(self.self_address()).to_list()

    async def _emit_to(self, address: str, envelope: Envelope) -> bool:
        try:
            had_listeners = await self.client_factory(address).remote_emit(envelope)
        except WebEmitterError as e:
            logger.warning("Remote emit of %r to %s failed: %s", envelope.name, address, e)
            self.stats.record_failure("remote_emit", e, target=address)
            return False
        self.stats.increment("remote_emits")
        return had_listeners

    async def _fan_out(self, envelope: Envelope) -> bool:
        targets = self._targets()
        if not targets:
            return False
        results = await asyncio.gather(*(self._emit_to(a, envelope) for a in targets))
        return any(results)

    async def global_emit(self, event: EventIdentifier, *args: Any) -> bool:
        """Emit locally, then on every peer, and wait for all peers to answer.

        Returns:
            True if this node or any peer that answered had listeners

        Raises:
            SerializationError: If any argument is not plain data; nothing
                is dispatched and no peer is contacted
            TypeError: If ``event`` is neither a string nor a Token

        """
        envelope, local = self._prepare(event, args)
        self.stats.increment("global_emits")
        remote = await self._fan_out(envelope)
        return local or remote

    def emit(self, event: EventIdentifier, *args: Any) -> bool:
        """Emit locally and start the peer fan-out in the background.

        Returns:
            Whether this node had listeners. The fan-out outcome is only
            visible through logs and statistics.

        Raises:
            SerializationError: If any argument is not plain data

        """
        envelope, local = self._prepare(event, args)
        self.stats.increment("background_emits")
        if self._targets():
            self._pending.create(
                self._background_fan_out(envelope),
                name=f"webemitter-emit-{envelope.name}",
            )
        return local

    async def _background_fan_out(self, envelope: Envelope) -> None:
        try:
            had_listeners = await self._fan_out(envelope)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Background fan-out of %r failed", envelope.name)
            self.stats.record_failure("background_emit", e)
            return
        logger.debug("Background fan-out of %r done (remote listeners: %s)", envelope.name, had_listeners)

    async def wait_pending(self) -> None:
        """Wait for every in-flight fire-and-forget fan-out."""
        await self._pending.wait()

    async def cancel_pending(self) -> None:
        """Cancel and await every in-flight fire-and-forget fan-out."""
        await self._pending.cancel_all()

    async def close(self) -> None:
        """Stop contacting peers; later emissions are dispatched locally only."""
        self._closed = True
        await self.cancel_pending()
