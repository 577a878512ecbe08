"""HTTP server exposing a node's status, emit and event-names operations.

Requests are authenticated with a shared bearer secret when one is
configured. Every failure is answered with a JSON ``{success: false, reason}``
body.
"""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web
from pydantic import ValidationError as PydanticValidationError

from webemitter.events.codec import EventCodec, default_codec
from webemitter.protocol import (
    AUTH_HEADER,
    AUTH_SCHEME,
    EMIT_PATH,
    EVENT_NAMES_PATH,
    STATUS_PATH,
    EmitRequest,
    EmitResponse,
    ErrorResponse,
    EventNamesResponse,
)
from webemitter.utils.exceptions import TransportError

if TYPE_CHECKING:  # pragma: no cover
    from aiohttp.web import Request, Response

    from webemitter.events.bus import LocalEventBus
    from webemitter.status import StatusResponder

logger = logging.getLogger(__name__)


def error_response(reason: str, status: int) -> Response:
    """JSON failure body with the given HTTP status."""
    return web.json_response(ErrorResponse(reason=reason).model_dump(), status=status)


class EmitterServer:
    """aiohttp application serving one node."""

    def __init__(
        self,
        bus: LocalEventBus,
        responder: StatusResponder,
        host: str = "localhost",
        port: int = 9192,
        secret: str | None = None,
        codec: EventCodec | None = None,
    ):
        """Initialize server.

        Args:
            bus: Bus that inbound emits are dispatched on
            responder: Source of status snapshots
            host: Bind host
            port: Bind port; 0 picks a free port
            secret: Shared secret required as a bearer token, if set
            codec: Codec used to decode inbound event names

        """
        self.bus = bus
        self.responder = responder
        self.host = host
        self.port = port
        self.secret = secret
        self.codec = codec or default_codec

        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self.bound_port: int | None = None

        self._setup_middleware()
        self._setup_routes()

    def _authorized(self, request: Request) -> bool:
        if not self.secret:
            return True
        header = request.headers.get(AUTH_HEADER, "")
        expected = f"{AUTH_SCHEME} {self.secret}"
        return hmac.compare_digest(header.encode("utf-8"), expected.encode("utf-8"))

    def _setup_middleware(self) -> None:
        """Set up middleware for authentication and error handling."""

        @web.middleware
        async def error_middleware(request: Request, handler: Any) -> Response:
            try:
                return await handler(request)
            except asyncio.CancelledError:
                raise
            except web.HTTPException as e:
                return error_response(e.reason, e.status)
            except Exception as e:
                logger.exception(
                    "Error handling request %s %s from %s",
                    request.method,
                    request.path,
                    request.remote,
                )
                return error_response(str(e) or type(e).__name__, 500)

        @web.middleware
        async def auth_middleware(request: Request, handler: Any) -> Response:
            if not self._authorized(request):
                logger.warning(
                    "Rejected unauthenticated %s %s from %s",
                    request.method,
                    request.path,
                    request.remote,
                )
                return error_response("Unauthorized", 401)
            return await handler(request)

        # error_middleware is outermost so it also covers auth failures
        self.app.middlewares.append(error_middleware)
        self.app.middlewares.append(auth_middleware)

    def _setup_routes(self) -> None:
        """Set up the node operation routes."""
        self.app.router.add_get(f"/{STATUS_PATH}", self._handle_status)
        self.app.router.add_post(f"/{EMIT_PATH}", self._handle_emit)
        self.app.router.add_get(f"/{EVENT_NAMES_PATH}", self._handle_event_names)

    async def _handle_status(self, _request: Request) -> Response:
        """Handle GET status."""
        response = self.responder.snapshot().to_response()
        return web.json_response(response.model_dump(by_alias=True, mode="json"))

    async def _handle_emit(self, request: Request) -> Response:
        """Handle POST emit."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return error_response("Request body is not valid JSON", 400)

        try:
            emit_request = EmitRequest.model_validate(body)
        except PydanticValidationError as e:
            return error_response(f"Malformed emit request: {e.error_count()} error(s)", 400)

        key = self.codec.decode_key(emit_request.event, emit_request.symbol)
        had_listeners = self.bus.dispatch(key, emit_request.args)
        logger.debug(
            "Inbound emit of %r from %s (listeners: %s)",
            emit_request.event,
            request.remote,
            had_listeners,
        )
        response = EmitResponse(success=True, had_listeners=had_listeners)
        return web.json_response(response.model_dump(by_alias=True))

    async def _handle_event_names(self, _request: Request) -> Response:
        """Handle GET event-names."""
        encoded = self.responder.listened_events()
        response = EventNamesResponse(
            success=True,
            events=[name for name, _ in encoded],
            symbols=[is_symbol for _, is_symbol in encoded],
        )
        return web.json_response(response.model_dump())

    async def start(self) -> int:
        """Bind and start serving.

        Returns:
            The bound port, which differs from ``port`` when ``port`` is 0

        Raises:
            TransportError: If the socket cannot be bound

        """
        if self.runner is not None:
            return self.bound_port or self.port

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        try:
            await self.site.start()
        except OSError as e:
            await self.runner.cleanup()
            self.runner = None
            self.site = None
            msg = f"Cannot listen on {self.host}:{self.port}: {e}"
            raise TransportError(msg, {"host": self.host, "port": self.port}) from e

        server = self.site._server  # noqa: SLF001
        sockets = getattr(server, "sockets", None) or ()
        self.bound_port = sockets[0].getsockname()[1] if sockets else self.port
        logger.info("Node server listening on %s:%s", self.host, self.bound_port)
        return self.bound_port

    async def stop(self) -> None:
        """Stop serving. Safe to call more than once."""
        if self.runner is None:
            return
        runner = self.runner
        self.runner = None
        self.site = None
        await runner.cleanup()
        logger.info("Node server stopped")
