"""Node status snapshots.

StatusResponder derives the node and network state that peers read through
the status operation, together with the peer list and listened events.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from webemitter.events.codec import EventCodec, default_codec
from webemitter.protocol import EventNameInfo, NetworkState, NodeState, StatusResponse

if TYPE_CHECKING:  # pragma: no cover
    from webemitter.events.bus import LocalEventBus
    from webemitter.peer.registry import PeerRegistry, SyncResult


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of one node."""

    node_state: NodeState
    network_state: NetworkState
    peers: tuple[str, ...] = ()
    listened_events: tuple[tuple[str, bool], ...] = ()

    def to_response(self) -> StatusResponse:
        """Render as the status response body."""
        return StatusResponse(
            success=True,
            node_status=self.node_state,
            network_status=self.network_state,
            servers=list(self.peers),
            event_names=[
                EventNameInfo(event=name, symbol=is_symbol)
                for name, is_symbol in self.listened_events
            ],
        )

    @classmethod
    def from_response(cls, response: StatusResponse) -> StatusSnapshot:
        """Build from a peer's status response body."""
        return cls(
            node_state=response.node_status,
            network_state=response.network_status,
            peers=tuple(response.servers),
            listened_events=tuple((e.event, e.symbol) for e in response.event_names),
        )


def network_state_for(result: SyncResult | None) -> NetworkState:
    """Network state implied by the most recent synchronization."""
    if result is None or result.expected == 0:
        return NetworkState.HEALTHY
    if not result.reachable:
        return NetworkState.DOWN
    if result.unreachable:
        return NetworkState.PARTIAL
    return NetworkState.HEALTHY


class StatusResponder:
    """Tracks node lifecycle and assembles StatusSnapshots."""

    def __init__(
        self,
        bus: LocalEventBus,
        registry: PeerRegistry,
        codec: EventCodec | None = None,
    ) -> None:
        """Initialize in the STARTING state."""
        self.bus = bus
        self.registry = registry
        self.codec = codec or default_codec
        self._node_state = NodeState.STARTING

    @property
    def node_state(self) -> NodeState:
        """Current node state."""
        return self._node_state

    def mark_running(self) -> None:
        """The node is listening."""
        self._node_state = NodeState.RUNNING

    def mark_closing(self) -> None:
        """The node is shutting down."""
        self._node_state = NodeState.CLOSING

    def mark_error(self) -> None:
        """Listening failed."""
        self._node_state = NodeState.ERROR

    @property
    def network_state(self) -> NetworkState:
        """Network state derived from the registry's last sync."""
        return network_state_for(self.registry.last_result)

    def listened_events(self) -> tuple[tuple[str, bool], ...]:
        """Encoded ``(name, is_symbol)`` of every event with local listeners."""
        encoded = {self.codec.encode(key) for key in self.bus.listened_names()}
        return tuple(sorted(encoded))

    def snapshot(self) -> StatusSnapshot:
        """Build a snapshot from current state."""
        return StatusSnapshot(
            node_state=self._node_state,
            network_state=self.network_state,
            peers=tuple(self.registry.current_peers),
            listened_events=self.listened_events(),
        )
