"""
In-process events.

The registry emits :class:`DataRefreshed`; the graph builder emits the
construction events. Handlers run synchronously on the emitting thread and
must not raise (failures are logged and swallowed so one bad subscriber
cannot break a refresh or a build).
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from pharma_kg.models import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base event."""


@dataclass(frozen=True)
class DataRefreshed(Event):
    source_id: str
    record_count: int
    at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class GraphConstructionStarted(Event):
    graph_id: str
    source_count: int


@dataclass(frozen=True)
class GraphConstructionCompleted(Event):
    graph_id: str
    entity_count: int
    relationship_count: int


@dataclass(frozen=True)
class GraphConstructionFailed(Event):
    graph_id: str
    error: str


Handler = Callable[[Event], None]


class EventBus:
    """Minimal thread-safe publish/subscribe."""

    def __init__(self):
        self._handlers: dict[type[Event], list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[Event], handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event type (subclasses included).

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[event_type]:
                    self._handlers[event_type].remove(handler)

        return unsubscribe

    def emit(self, event: Event) -> None:
        with self._lock:
            handlers = [
                h
                for event_type, hs in self._handlers.items()
                if isinstance(event, event_type)
                for h in hs
            ]
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)
