"""Peer set ownership and synchronization.

A sync cycle probes every address in its starting set, then merges the peer
lists reported by the peers that answered. It is a single-hop union, not a
converging gossip protocol: if node A learns of B through a third node, B
does not learn of A until B walks to A on its own.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from webemitter.peer.address import PeerSet, normalize_address
from webemitter.utils.exceptions import ConfigurationError, WebEmitterError
from webemitter.utils.logging_config import LoggingContext
from webemitter.utils.stats import EmitterStats

if TYPE_CHECKING:  # pragma: no cover
    from webemitter.peer.client import PeerClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], "PeerClient"]
SelfAddress = Callable[[], "str | None"]


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one synchronization cycle.

    Attributes:
        expected: Number of addresses probed
        reachable: Addresses that answered the probe and the status fetch
        unreachable: Addresses dropped this cycle
        peers: PeerSet that replaced the registry's current peers

    """

    expected: int
    reachable: tuple[str, ...] = ()
    unreachable: tuple[str, ...] = ()
    peers: PeerSet = field(default_factory=PeerSet)


class PeerRegistry:
    """Owns the current PeerSet and the background sync loop."""

    def __init__(
        self,
        self_address: SelfAddress,
        client_factory: ClientFactory,
        bootstrap: str | None = None,
        interval: float = 60.0,
        probe_timeout: float = 1.0,
        stats: EmitterStats | None = None,
    ):
        """Initialize peer registry.

        Args:
            self_address: Returns this node's address, or None while it is not listening
            client_factory: Returns a PeerClient for an address
            bootstrap: Seed address used for the first cycle
            interval: Seconds between background cycles
            probe_timeout: Liveness probe timeout in seconds
            stats: Shared statistics

        """
        self.self_address = self_address
        self.client_factory = client_factory
        try:
            self.bootstrap = normalize_address(bootstrap) if bootstrap else None
        except ValueError as e:
            msg = f"Invalid bootstrap address: {e}"
            raise ConfigurationError(msg) from e
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.stats = stats if stats is not None else EmitterStats()

        self._peers = PeerSet()
        self.last_result: SyncResult | None = None

        self.running = False
        self._sync_task: asyncio.Task | None = None

    @property
    def current_peers(self) -> PeerSet:
        """The current PeerSet. Replaced, never mutated, by ``sync``."""
        return self._peers

    async def _probe(self, address: str) -> PeerSet | None:
        """Return the peers reported by ``address``, or None if it is dropped."""
        client = self.client_factory(address)
        if not await client.is_alive(self.probe_timeout):
            logger.debug("Peer %s failed liveness probe", address)
            self.stats.record_failure("probe", "not alive", target=address)
            return None
        try:
            snapshot = await client.status()
            return PeerSet(snapshot.peers)
        except (WebEmitterError, ValueError) as e:
            logger.debug("Status fetch from %s failed: %s", address, e)
            self.stats.record_failure("status", e, target=address)
            return None

    async def sync(self, seed: str | None = None) -> SyncResult:
        """Run one synchronization cycle.

        Args:
            seed: Start from this address alone instead of the current peers

        Returns:
            The cycle's SyncResult; ``current_peers`` is replaced by its ``peers``

        Raises:
            ConfigurationError: If ``seed`` is not a valid address

        """
        if seed is not None:
            try:
                starting = PeerSet((seed,))
            except ValueError as e:
                msg = f"Invalid seed address: {e}"
                raise ConfigurationError(msg) from e
        else:
            starting = self._peers

        own = self.self_address()
        targets = starting.without(own).to_list()

        outcomes = await asyncio.gather(*(self._probe(a) for a in targets))

        reachable: list[str] = []
        unreachable: list[str] = []
        learned: list[str] = [own] if own else []
        for address, reported in zip(targets, outcomes):
            if reported is None:
                unreachable.append(address)
            else:
                reachable.append(address)
                learned.append(address)
                learned.extend(reported)

        # A peer that failed its probe stays out even if a live peer still lists it
        dropped = set(unreachable)
        result = SyncResult(
            expected=len(targets),
            reachable=tuple(reachable),
            unreachable=tuple(unreachable),
            peers=PeerSet(a for a in learned if a not in dropped),
        )
        self._peers = result.peers
        self.last_result = result
        self.stats.increment("syncs")

        logger.debug(
            "Sync complete: %d/%d reachable, %d peers known",
            len(reachable),
            len(targets),
            len(result.peers),
        )
        return result

    async def start(self, immediate: bool | None = None) -> None:
        """Start the background sync loop.

        Args:
            immediate: Run the first cycle now instead of after one interval.
                Defaults to whether a bootstrap address is configured.

        """
        if self.running:
            return

        self.running = True
        if immediate is None:
            immediate = self.bootstrap is not None
        self._sync_task = asyncio.create_task(self._sync_loop(immediate))
        logger.info("Started peer sync (interval: %.1fs)", self.interval)

    async def stop(self) -> None:
        """Stop the background sync loop."""
        if not self.running:
            return

        self.running = False

        if self._sync_task:
            self._sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sync_task
            self._sync_task = None

        logger.info("Stopped peer sync")

    def _loop_seed(self) -> str | None:
        """Fall back to the bootstrap address while no other peer is known."""
        if self.bootstrap is None:
            return None
        if len(self._peers.without(self.self_address())) > 0:
            return None
        return self.bootstrap

    async def _sync_loop(self, immediate: bool) -> None:
        """Background loop driving ``sync``."""
        first = True
        while self.running:
            if not (first and immediate):
                await asyncio.sleep(self.interval)
            first = False
            seed = self._loop_seed()
            try:
                with LoggingContext("peer sync", logger=logger, seed=seed):
                    await self.sync(seed=seed)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # LoggingContext has already logged the failure
                self.stats.record_failure("sync", e)
