"""
Observer registry for job and queue lifecycle events.

Observers run synchronously, in registration order, when an event is emitted.
Delivery is best effort: an observer that raises is logged and skipped so the
operation that emitted the event carries on.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)

# Observers registered under this name receive every event
ANY_EVENT = "*"


class EventRegistry(Generic[E]):
    """Per-entity observer registry keyed by event type."""

    def __init__(self):
        self._observers: dict[str, list[Callable[[E], None]]] = defaultdict(list)

    def on(self, event_type: str, observer: Callable[[E], None]) -> Callable[[E], None]:
        """
        Register an observer for an event type.

        Args:
            event_type: Event name, or "*" for all events.
            observer: Callable receiving the event model.

        Returns:
            The observer, so `on` can be used as a decorator factory target.
        """
        self._observers[event_type].append(observer)
        return observer

    def off(self, event_type: str, observer: Callable[[E], None]) -> None:
        """Remove a previously registered observer."""
        observers = self._observers.get(event_type)
        if observers and observer in observers:
            observers.remove(observer)

    def emit(self, event: E) -> None:
        """Deliver an event to its observers and to wildcard observers."""
        event_type = getattr(event, "event_type")
        observers = [*self._observers.get(event_type, ()), *self._observers.get(ANY_EVENT, ())]
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception(
                    "Event observer failed",
                    extra={"event_type": event_type},
                )

    def clear(self) -> None:
        """Drop all observers."""
        self._observers.clear()
