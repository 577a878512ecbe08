"""Tests for PeerRegistry synchronization with mocked peer clients."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from webemitter.peer.address import PeerSet
from webemitter.peer.registry import PeerRegistry
from webemitter.protocol import NetworkState, NodeState
from webemitter.status import StatusSnapshot
from webemitter.utils.exceptions import ConfigurationError, TransportError
from webemitter.utils.stats import EmitterStats

pytestmark = [pytest.mark.unit, pytest.mark.peer]

SELF = "http://self:1"


def _snapshot(*peers: str) -> StatusSnapshot:
    return StatusSnapshot(NodeState.RUNNING, NetworkState.HEALTHY, peers=peers)


class FakeNetwork:
    """Client factory over a table of address -> reported peers (None = down)."""

    def __init__(self, table: dict[str, tuple[str, ...] | None]):
        self.table = table
        self.probed: list[str] = []
        self.status_errors: set[str] = set()

    def __call__(self, address: str):
        client = MagicMock()

        async def is_alive(_timeout=None):
            self.probed.append(address)
            return self.table.get(address) is not None

        async def status():
            if address in self.status_errors:
                msg = "status failed"
                raise TransportError(msg)
            return _snapshot(*self.table[address])

        client.is_alive = AsyncMock(side_effect=is_alive)
        client.status = AsyncMock(side_effect=status)
        return client


def _registry(network, address=SELF, **kwargs) -> PeerRegistry:
    return PeerRegistry(
        self_address=lambda: address,
        client_factory=network,
        stats=EmitterStats(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_sync_without_peers_contains_only_self():
    """An isolated node knows itself."""
    network = FakeNetwork({})
    registry = _registry(network)

    result = await registry.sync()

    assert result.expected == 0
    assert registry.current_peers == PeerSet([SELF])
    assert network.probed == []


@pytest.mark.asyncio
async def test_sync_from_seed_merges_reported_peers():
    """Peers reported by a live seed are merged, not probed this cycle."""
    network = FakeNetwork({"http://a:1": ("http://a:1", "http://c:1")})
    registry = _registry(network)

    result = await registry.sync(seed="http://A:1/")

    assert result.reachable == ("http://a:1",)
    assert registry.current_peers == PeerSet([SELF, "http://a:1", "http://c:1"])
    assert network.probed == ["http://a:1"]


@pytest.mark.asyncio
async def test_seed_replaces_current_peers():
    """A seeded cycle starts from the seed alone."""
    network = FakeNetwork({"http://a:1": (), "http://b:1": ()})
    registry = _registry(network)
    await registry.sync(seed="http://a:1")

    await registry.sync(seed="http://b:1")

    assert registry.current_peers == PeerSet([SELF, "http://b:1"])


@pytest.mark.asyncio
async def test_unreachable_peers_are_dropped():
    """Addresses that fail the probe leave the set."""
    network = FakeNetwork({"http://a:1": ("http://a:1", "http://b:1"), "http://b:1": None})
    registry = _registry(network)
    await registry.sync(seed="http://a:1")

    result = await registry.sync()

    assert set(result.reachable) == {"http://a:1"}
    assert result.unreachable == ("http://b:1",)
    assert result.expected == 2
    assert registry.current_peers == PeerSet([SELF, "http://a:1"])
    assert registry.stats.counters["probe_failures"] == 1


@pytest.mark.asyncio
async def test_dead_peer_reported_by_live_peer_stays_dropped():
    """A live peer still listing a dead one does not bring it back."""
    network = FakeNetwork(
        {
            "http://b:1": ("http://b:1", "http://c:1"),
            "http://c:1": None,
        }
    )
    registry = _registry(network)
    await registry.sync(seed="http://b:1")
    assert "http://c:1" in registry.current_peers

    result = await registry.sync()

    assert result.unreachable == ("http://c:1",)
    assert "http://c:1" not in registry.current_peers
    assert registry.current_peers == PeerSet([SELF, "http://b:1"])


@pytest.mark.asyncio
async def test_failed_status_fetch_drops_peer():
    """A peer that is alive but fails the status fetch is dropped."""
    network = FakeNetwork({"http://a:1": ("http://x:1",)})
    network.status_errors.add("http://a:1")
    registry = _registry(network)

    result = await registry.sync(seed="http://a:1")

    assert result.unreachable == ("http://a:1",)
    assert registry.current_peers == PeerSet([SELF])
    assert registry.stats.counters["status_failures"] == 1


@pytest.mark.asyncio
async def test_self_is_never_probed():
    """The node does not probe its own address."""
    network = FakeNetwork({SELF: ()})
    registry = _registry(network)

    result = await registry.sync(seed=SELF)

    assert network.probed == []
    assert result.expected == 0
    assert registry.current_peers == PeerSet([SELF])


@pytest.mark.asyncio
async def test_not_listening_node_omits_itself():
    """A node without an address only records learned peers."""
    network = FakeNetwork({"http://a:1": ("http://a:1",)})
    registry = _registry(network, address=None)

    await registry.sync(seed="http://a:1")

    assert registry.current_peers == PeerSet(["http://a:1"])


@pytest.mark.asyncio
async def test_invalid_seed():
    """Seeds must be valid addresses."""
    registry = _registry(FakeNetwork({}))
    with pytest.raises(ConfigurationError):
        await registry.sync(seed="nonsense")


def test_invalid_bootstrap():
    """The bootstrap address is validated at construction."""
    with pytest.raises(ConfigurationError):
        _registry(FakeNetwork({}), bootstrap="nonsense")


@pytest.mark.asyncio
async def test_last_result_is_recorded():
    """last_result holds the most recent cycle."""
    registry = _registry(FakeNetwork({"http://a:1": None}))
    assert registry.last_result is None

    result = await registry.sync(seed="http://a:1")

    assert registry.last_result is result
    assert registry.stats.counters["syncs"] == 1


@pytest.mark.asyncio
async def test_start_runs_bootstrap_immediately_and_stop_is_idempotent():
    """With a bootstrap, the loop syncs at once; stop cancels it."""
    network = FakeNetwork({"http://a:1": ("http://a:1",)})
    registry = _registry(network, bootstrap="http://a:1", interval=3600)

    await registry.start()
    await registry.start()
    for _ in range(50):
        if registry.last_result is not None:
            break
        await asyncio.sleep(0.01)

    assert registry.current_peers == PeerSet([SELF, "http://a:1"])
    await registry.stop()
    await registry.stop()
    assert registry._sync_task is None  # noqa: SLF001
    assert not registry.running


@pytest.mark.asyncio
async def test_loop_waits_one_interval_without_bootstrap():
    """Without a bootstrap, the first cycle waits for the interval."""
    registry = _registry(FakeNetwork({}), interval=3600)

    await registry.start()
    await asyncio.sleep(0.05)

    assert registry.last_result is None
    await registry.stop()


@pytest.mark.asyncio
async def test_loop_survives_failing_cycle():
    """A cycle that raises is recorded and the loop keeps running."""
    registry = _registry(FakeNetwork({}), interval=0.01)
    calls = 0

    async def flaky_sync(seed=None):
        nonlocal calls
        calls += 1
        if calls == 1:
            msg = "unexpected"
            raise RuntimeError(msg)
        return MagicMock()

    registry.sync = flaky_sync  # type: ignore[method-assign]
    await registry.start()
    for _ in range(100):
        if calls >= 2:
            break
        await asyncio.sleep(0.01)
    await registry.stop()

    assert calls >= 2
    assert registry.stats.counters["sync_failures"] == 1


@pytest.mark.asyncio
async def test_stop_during_sync_is_not_logged_as_failure(caplog):
    """Cancelling an in-flight cycle on stop is a clean shutdown."""
    probing = asyncio.Event()

    def factory(_address):
        async def hang(_timeout=None):
            probing.set()
            await asyncio.Event().wait()

        return MagicMock(is_alive=AsyncMock(side_effect=hang))

    registry = _registry(factory, bootstrap="http://a:1")
    with caplog.at_level(logging.DEBUG, logger="webemitter.peer.registry"):
        await registry.start()
        await asyncio.wait_for(probing.wait(), timeout=1.0)
        await registry.stop()

    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
    assert "sync_failures" not in registry.stats.counters
