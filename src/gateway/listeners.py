"""Registry of listeners attached to every gateway session a client creates."""

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from core.types import GatewaySession, ListenerCategory

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class ListenerRegistry:
    """
    Listeners per category, kept in registration order.

    Registration copies the category's tuple on write, so sessions being set
    up concurrently always attach a consistent snapshot.
    """

    def __init__(self) -> None:
        self._listeners: dict[ListenerCategory, tuple[Listener, ...]] = {}
        self._lock = threading.Lock()

    def register(self, category: ListenerCategory, listener: Listener) -> None:
        if not isinstance(category, ListenerCategory):
            raise TypeError(f"category must be a ListenerCategory, got {category!r}")
        if not callable(listener):
            raise TypeError(f"listener must be callable, got {type(listener).__name__}")
        with self._lock:
            self._listeners[category] = self._listeners.get(category, ()) + (listener,)
        logger.debug(
            "Registered listener",
            extra={"listener_category": category.value},
        )

    def listeners(self, category: ListenerCategory) -> tuple[Listener, ...]:
        return self._listeners.get(category, ())

    def items(self) -> Iterator[tuple[ListenerCategory, tuple[Listener, ...]]]:
        # Iterate over a copy of the mapping; tuples themselves are immutable
        return iter(list(self._listeners.items()))

    def __len__(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    def attach_to(self, session: GatewaySession) -> int:
        """Add every registered listener to ``session``; returns how many were attached."""
        attached = 0
        for category, listeners in self.items():
            for listener in listeners:
                session.add_listener(category, listener)
                attached += 1
        return attached


__all__ = ["Listener", "ListenerRegistry"]
