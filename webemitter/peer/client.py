"""HTTP client for one remote node.

Every call either returns a value or raises a typed error: TransportError
for network failures, timeouts and HTTP error statuses, ProtocolError for
bodies that do not match the protocol. ``is_alive`` is the exception: it
reports any failure as False.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from webemitter.events.codec import EventCodec, EventIdentifier, default_codec
from webemitter.peer.address import join_url, normalize_address
from webemitter.protocol import (
    AUTH_HEADER,
    AUTH_SCHEME,
    EMIT_PATH,
    EVENT_NAMES_PATH,
    STATUS_PATH,
    EmitResponse,
    Envelope,
    EventNamesResponse,
    StatusResponse,
)
from webemitter.status import StatusSnapshot
from webemitter.utils.exceptions import (
    ConfigurationError,
    PeerRejectedError,
    ProtocolError,
    TransportError,
    WebEmitterError,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], aiohttp.ClientSession]


class PeerClient:
    """Client for the status, emit and event-names operations of one node."""

    def __init__(
        self,
        base_url: str,
        secret: str | None = None,
        timeout: float = 5.0,
        probe_timeout: float = 1.0,
        session: aiohttp.ClientSession | None = None,
        codec: EventCodec | None = None,
        session_factory: SessionFactory | None = None,
    ):
        """Initialize peer client.

        Args:
            base_url: Base address of the remote node
            secret: Shared secret sent as a bearer token
            timeout: Timeout in seconds for status/emit/event-names requests
            probe_timeout: Default timeout in seconds for ``is_alive``
            session: Shared HTTP session; the client never closes a session it did not create
            codec: Codec used to decode event names
            session_factory: Called on each request for a shared session owned
                elsewhere; it runs inside the event loop, so clients can be
                built from synchronous code

        """
        try:
            self.base_url = normalize_address(base_url)
        except ValueError as e:
            msg = f"Invalid peer address: {e}"
            raise ConfigurationError(msg) from e
        self.secret = secret
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.codec = codec or default_codec

        self._session = session
        self._session_factory = session_factory
        self._owns_session = session is None and session_factory is None

    def __repr__(self) -> str:
        """Return a debugging representation."""
        return f"PeerClient({self.base_url!r})"

    async def __aenter__(self) -> PeerClient:
        """Enter async context."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the client's own session."""
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Return the HTTP session, creating one if this client owns it."""
        if self._session_factory is not None:
            return self._session_factory()
        if self._session is None or self._session.closed:
            if not self._owns_session:
                msg = f"Shared HTTP session is closed (peer {self.base_url})"
                raise TransportError(msg)
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with authentication."""
        if self.secret:
            return {AUTH_HEADER: f"{AUTH_SCHEME} {self.secret}"}
        return {}

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Issue one request and return the decoded JSON body."""
        session = await self._ensure_session()
        url = join_url(self.base_url, path)
        total = self.timeout if timeout is None else timeout

        try:
            async with session.request(
                method,
                url,
                json=payload,
                headers=self._get_headers(),
                timeout=aiohttp.ClientTimeout(total=total),
            ) as resp:
                resp.raise_for_status()
                body = await resp.read()
        except asyncio.TimeoutError as e:
            msg = f"{method} {url} timed out after {total:.2f}s"
            raise TransportError(msg, {"peer": self.base_url}) from e
        except aiohttp.ClientResponseError as e:
            msg = f"{method} {url} failed with HTTP {e.status}"
            raise TransportError(msg, {"peer": self.base_url, "status": e.status}) from e
        except aiohttp.ClientError as e:
            msg = f"{method} {url} failed: {e}"
            raise TransportError(msg, {"peer": self.base_url}) from e

        try:
            return json.loads(body)
        except ValueError as e:
            msg = f"{method} {url} returned a non-JSON body"
            raise ProtocolError(msg, {"peer": self.base_url}) from e

    def _raise_if_rejected(self, data: Any, operation: str) -> None:
        if isinstance(data, dict) and data.get("success") is False:
            reason = data.get("reason") or "no reason given"
            msg = f"Peer {self.base_url} rejected {operation}: {reason}"
            raise PeerRejectedError(msg, {"peer": self.base_url, "reason": reason})

    async def is_alive(self, timeout: float | None = None) -> bool:
        """Probe the peer's status operation within ``timeout`` seconds.

        Returns:
            True if the peer answered with a well-formed, successful status
            body; False on any failure. Never raises.

        """
        try:
            data = await self._request_json(
                "GET",
                STATUS_PATH,
                timeout=self.probe_timeout if timeout is None else timeout,
            )
            return StatusResponse.model_validate(data).success
        except (WebEmitterError, PydanticValidationError) as e:
            logger.debug("Liveness probe of %s failed: %s", self.base_url, e)
            return False

    async def status(self) -> StatusSnapshot:
        """Fetch the peer's status.

        Raises:
            TransportError: On network failure, timeout or HTTP error status
            ProtocolError: If the body is not a status response

        """
        data = await self._request_json("GET", STATUS_PATH)
        self._raise_if_rejected(data, "status")
        try:
            response = StatusResponse.model_validate(data)
        except PydanticValidationError as e:
            msg = f"Malformed status response from {self.base_url}"
            raise ProtocolError(msg, {"peer": self.base_url, "errors": e.errors()}) from e
        return StatusSnapshot.from_response(response)

    async def remote_emit(self, envelope: Envelope) -> bool:
        """Emit ``envelope`` on the peer.

        Returns:
            Whether the peer had listeners for the event

        Raises:
            TransportError: On network failure, timeout or HTTP error status
            PeerRejectedError: If the peer answered ``success: false``
            ProtocolError: If the acknowledgement is malformed

        """
        data = await self._request_json(
            "POST",
            EMIT_PATH,
            payload=envelope.to_request().model_dump(),
        )
        self._raise_if_rejected(data, "emit")
        try:
            return EmitResponse.model_validate(data).had_listeners
        except PydanticValidationError as e:
            msg = f"Malformed emit acknowledgement from {self.base_url}"
            raise ProtocolError(msg, {"peer": self.base_url, "errors": e.errors()}) from e

    async def remote_event_names(self) -> list[EventIdentifier]:
        """Fetch the names of events the peer has listeners for.

        Raises:
            TransportError: On network failure, timeout or HTTP error status
            ProtocolError: If the body is malformed

        """
        data = await self._request_json("GET", EVENT_NAMES_PATH)
        self._raise_if_rejected(data, "event-names")
        try:
            response = EventNamesResponse.model_validate(data)
        except PydanticValidationError as e:
            msg = f"Malformed event-names response from {self.base_url}"
            raise ProtocolError(msg, {"peer": self.base_url, "errors": e.errors()}) from e

        symbols = response.symbols
        if symbols is None or len(symbols) != len(response.events):
            symbols = [False] * len(response.events)
        return [
            self.codec.decode(name, is_symbol)
            for name, is_symbol in zip(response.events, symbols)
        ]
