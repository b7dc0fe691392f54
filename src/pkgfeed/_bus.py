"""Consolidated event bus for feed consumers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pkgfeed.state.events import FeedEvent, FeedEventType

_logger = logging.getLogger(__name__)

EventHandler = Callable[[FeedEvent], None]


class EventBus:
    """Synchronous fan-out of :class:`FeedEvent` to subscribed handlers.

    A handler subscribed without types receives every event.  Handler
    failures are logged and never reach the publisher.
    """

    def __init__(self, *, logger: logging.Logger | logging.LoggerAdapter[Any] | None = None) -> None:
        self._logger = logger or _logger
        self._handlers: list[tuple[EventHandler, frozenset[FeedEventType] | None]] = []

    def subscribe(self, handler: EventHandler, *types: FeedEventType | str) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unregisters it."""
        wanted = frozenset(FeedEventType(t) for t in types) if types else None
        entry = (handler, wanted)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def publish(self, event: FeedEvent) -> None:
        for handler, wanted in list(self._handlers):
            if wanted is not None and event.type not in wanted:
                continue
            try:
                handler(event)
            except Exception:
                self._logger.debug("event handler failed for %s", event.type, exc_info=True)
