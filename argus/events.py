"""Explicit observer channel for build events.

The compiler and router publish lifecycle events on an ``EventChannel`` that
is handed to them by the caller; nothing is dispatched through module-level
state. Subscribers are plain callables.

Events published by the compiler:
- ``compilation_started(rep)`` / ``compilation_ended(rep)``
- ``filtering_started(rep, filter_name)`` / ``filtering_ended(rep, filter_name)``
- ``layout_applied(rep, layout)``
- ``rep_written(rep, path, created, modified)``
- ``rep_skipped(rep)``: the rep was up to date and was read back from disk.

Events published by the router:
- ``rep_routed(rep)`` and ``rep_unrouted(rep)``
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[..., Any]


class EventChannel:
    """Named events with ordered subscriber lists."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, name: str, subscriber: Subscriber) -> Subscriber:
        """Register ``subscriber`` for event ``name`` and return it."""
        self._subscribers.setdefault(name, []).append(subscriber)
        return subscriber

    def on(self, name: str) -> Callable[[Subscriber], Subscriber]:
        """Decorator form of ``subscribe``."""

        def decorator(subscriber: Subscriber) -> Subscriber:
            return self.subscribe(name, subscriber)

        return decorator

    def unsubscribe(self, name: str, subscriber: Subscriber) -> None:
        subscribers = self._subscribers.get(name, [])
        if subscriber in subscribers:
            subscribers.remove(subscriber)

    def fire(self, name: str, *args: Any, **kwargs: Any) -> None:
        """Call every subscriber of ``name`` in subscription order.

        A subscriber returning ``False`` stops propagation to later ones.
        """
        subscribers = self._subscribers.get(name)
        if not subscribers:
            return
        logger.debug("firing %s to %d subscriber(s)", name, len(subscribers))
        for subscriber in list(subscribers):
            if subscriber(*args, **kwargs) is False:
                break

    def __repr__(self) -> str:
        names = ", ".join(f"{k}={len(v)}" for k, v in self._subscribers.items())
        return f"<EventChannel {names}>"
