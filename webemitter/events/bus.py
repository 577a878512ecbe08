"""In-process listener registry with synchronous dispatch."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable

from webemitter.events.codec import EventIdentifier, EventKey, to_event_key
from webemitter.utils.exceptions import ListenerError
from webemitter.utils.logging_config import get_logger, log_exception
from webemitter.utils.stats import EmitterStats

Listener = Callable[..., Any]
ListenerErrorCallback = Callable[[ListenerError], None]

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class ListenerHandle:
    """Returned by ``register``; pass it to ``unregister`` to remove the listener."""

    key: EventKey
    listener: Listener = field(compare=False)
    once: bool = field(default=False, compare=False)
    handle_id: int = field(default_factory=lambda: next(_handle_ids))


class LocalEventBus:
    """Listener registry keyed by EventKey.

    Listeners run synchronously in registration order. A listener that raises
    is reported as a ListenerError and the remaining listeners still run.
    """

    def __init__(
        self,
        on_listener_error: ListenerErrorCallback | None = None,
        stats: EmitterStats | None = None,
    ) -> None:
        """Initialize an empty bus.

        Args:
            on_listener_error: Called with every ListenerError raised during dispatch
            stats: Shared statistics to record dispatches and failures in

        """
        self._listeners: dict[EventKey, list[ListenerHandle]] = {}
        self.on_listener_error = on_listener_error
        self.stats = stats if stats is not None else EmitterStats()
        self.logger = get_logger(__name__)

    def register(
        self,
        event: EventIdentifier | EventKey,
        listener: Listener,
        once: bool = False,
    ) -> ListenerHandle:
        """Register ``listener`` for ``event``."""
        if not callable(listener):
            msg = f"Listener must be callable, got {type(listener).__name__}"
            raise TypeError(msg)
        key = to_event_key(event)
        handle = ListenerHandle(key=key, listener=listener, once=once)
        self._listeners.setdefault(key, []).append(handle)
        self.logger.debug("Registered listener for %r (once=%s)", key.wire_name, once)
        return handle

    def unregister(self, handle: ListenerHandle) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        handles = self._listeners.get(handle.key)
        if not handles:
            return False
        try:
            handles.remove(handle)
        except ValueError:
            return False
        if not handles:
            del self._listeners[handle.key]
        return True

    def remove_listener(self, event: EventIdentifier | EventKey, listener: Listener) -> bool:
        """Remove the most recently added registration of ``listener`` for ``event``."""
        key = to_event_key(event)
        for handle in reversed(self._listeners.get(key, [])):
            if handle.listener is listener or handle.listener == listener:
                return self.unregister(handle)
        return False

    def clear(self, event: EventIdentifier | EventKey | None = None) -> None:
        """Remove all listeners, or all listeners of one event."""
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(to_event_key(event), None)

    def dispatch(self, event: EventIdentifier | EventKey, args: list[Any] | tuple[Any, ...] = ()) -> bool:
        """Invoke every listener of ``event`` with ``args``.

        Returns:
            True if at least one listener was registered, whether or not any
            of them raised.

        """
        key = to_event_key(event)
        handles = list(self._listeners.get(key, ()))
        self.stats.increment("local_dispatches")
        if not handles:
            return False

        for handle in handles:
            if handle.once:
                self.unregister(handle)
            try:
                handle.listener(*args)
            except Exception as e:
                self._report_listener_error(key, handle, e)

        return True

    def _report_listener_error(
        self, key: EventKey, handle: ListenerHandle, exc: Exception
    ) -> None:
        error = ListenerError(
            f"Listener {getattr(handle.listener, '__qualname__', handle.listener)!r} "
            f"failed for event {key.wire_name!r}: {exc}",
            event=key.identifier,
            listener=handle.listener,
        )
        error.__cause__ = exc
        log_exception(self.logger, exc, f"Listener failed for event {key.wire_name!r}")
        self.stats.record_failure("listener", exc, target=key.wire_name)
        if self.on_listener_error is not None:
            try:
                self.on_listener_error(error)
            except Exception:
                self.logger.exception("on_listener_error callback failed")

    def listener_count(self, event: EventIdentifier | EventKey) -> int:
        """Number of listeners registered for ``event``."""
        return len(self._listeners.get(to_event_key(event), ()))

    def listeners(self, event: EventIdentifier | EventKey) -> list[Listener]:
        """Copy of the listeners registered for ``event``, in order."""
        return [h.listener for h in self._listeners.get(to_event_key(event), ())]

    def listened_names(self) -> set[EventKey]:
        """Keys with at least one listener."""
        return {key for key, handles in self._listeners.items() if handles}
