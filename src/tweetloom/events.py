"""Event registration and dispatch for the client."""

import inspect
from collections.abc import Callable
from typing import Any

from .constants import ClientEvent
from .exceptions import InvalidArgumentError
from .log_config import logger

EventHandler = Callable[..., Any]
"""A plain function or coroutine function called with the event's arguments."""


def coerce_event(event: ClientEvent | str) -> ClientEvent:
    if isinstance(event, ClientEvent):
        return event
    if isinstance(event, str):
        if event in ClientEvent.__members__:
            return ClientEvent[event]
        try:
            return ClientEvent(event)
        except ValueError:
            pass
    raise InvalidArgumentError(f"Unknown event: {event!r}")


class EventEmitter:
    """Dispatches events to registered handlers in registration order.

    Coroutine handlers are awaited before the next handler runs, so handlers
    observe events in the order they were emitted. A failing handler is
    logged and does not prevent the remaining handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[ClientEvent, list[EventHandler]] = {}

    def on(self, event: ClientEvent | str, handler: EventHandler) -> EventHandler:
        """Register ``handler`` for ``event`` and return it.

        Raises:
            InvalidArgumentError: If the event is unknown or the handler is not callable.
        """
        if not callable(handler):
            raise InvalidArgumentError(f"Event handler must be callable, got {handler!r}")
        self._handlers.setdefault(coerce_event(event), []).append(handler)
        return handler

    def off(self, event: ClientEvent | str, handler: EventHandler) -> None:
        handlers = self._handlers.get(coerce_event(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def listeners(self, event: ClientEvent | str) -> list[EventHandler]:
        return list(self._handlers.get(coerce_event(event), []))

    async def emit(self, event: ClientEvent, *args: Any) -> None:
        for handler in self.listeners(event):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Error in '{event.value}' handler {getattr(handler, '__name__', str(handler))}"
                )
