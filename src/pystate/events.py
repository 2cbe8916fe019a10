"""Synchronous named-event dispatch.

Usage:
    state.on("change:name", lambda state, value, options: ...)
    state.on("all", lambda event_name, *args: ...)
    state.trigger("change:name", state, "new", {})

Handlers run in registration order. Handlers registered or removed while an
event is being dispatched take effect from the next ``trigger``. Exceptions
raised by a handler propagate to whoever triggered the event.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pystate._constants import ALL_EVENT

EventHandler = Callable[..., Any]


class Events:
    """Mixin adding ``on``/``once``/``off``/``trigger`` to a class."""

    def _event_handlers(self) -> dict[str, list[EventHandler]]:
        handlers: dict[str, list[EventHandler]] = self.__dict__.setdefault("_handlers", {})
        return handlers

    def on(self, name: str, handler: EventHandler) -> EventHandler:
        """Subscribe *handler* to *name*; returns the handler for ``off``."""
        self._event_handlers().setdefault(name, []).append(handler)
        return handler

    def once(self, name: str, handler: EventHandler) -> EventHandler:
        """Subscribe *handler* for a single call of *name*."""

        def _once(*args: Any) -> Any:
            self.off(name, _once)
            return handler(*args)

        _once.__wrapped__ = handler  # type: ignore[attr-defined]
        return self.on(name, _once)

    def off(self, name: str | None = None, handler: EventHandler | None = None) -> None:
        """Remove handlers.

        Without arguments every handler is removed; with only *name* every
        handler of that event; with only *handler* that handler from every
        event.
        """
        handlers = self._event_handlers()
        names = [name] if name is not None else list(handlers)
        for event_name in names:
            if event_name not in handlers:
                continue
            if handler is None:
                del handlers[event_name]
                continue
            remaining = [
                h for h in handlers[event_name] if h is not handler and getattr(h, "__wrapped__", None) is not handler
            ]
            if remaining:
                handlers[event_name] = remaining
            else:
                del handlers[event_name]

    def trigger(self, name: str, *args: Any) -> None:
        """Call the handlers of *name*, then the ``all`` handlers."""
        handlers = self._event_handlers()
        for handler in list(handlers.get(name, ())):
            handler(*args)
        if name != ALL_EVENT:
            for handler in list(handlers.get(ALL_EVENT, ())):
                handler(name, *args)

    def has_listeners(self, name: str) -> bool:
        return bool(self._event_handlers().get(name))
