"""Content-addressed cache of events already seen.

The first copy of an event id to arrive wins; later copies from any relay
are recognized as duplicates and never reach a subscription callback.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import NamedTuple

from nostrwiki.models.event import Event


class PutResult(NamedTuple):
    """Outcome of [EventStore.put_if_absent()][nostrwiki.relay.store.EventStore.put_if_absent].

    Attributes:
        inserted: ``True`` only for the first insertion of this id.
        event: The stored (canonical) instance for this id.
    """

    inserted: bool
    event: Event


class EventStore:
    """Thread-safe, append-only event cache keyed by event id.

    Args:
        max_size: Optional bound. When set, the least recently inserted or
            looked-up events are evicted first. An evicted id counts as new
            again, so it can be delivered a second time.
    """

    def __init__(self, max_size: int | None = None) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._max_size = max_size
        self._events: OrderedDict[str, Event] = OrderedDict()
        self._lock = threading.Lock()

    def put_if_absent(self, event: Event) -> PutResult:
        with self._lock:
            existing = self._events.get(event.id)
            if existing is not None:
                if self._max_size is not None:
                    self._events.move_to_end(event.id)
                return PutResult(inserted=False, event=existing)
            self._events[event.id] = event
            if self._max_size is not None and len(self._events) > self._max_size:
                self._events.popitem(last=False)
            return PutResult(inserted=True, event=event)

    def get(self, event_id: str) -> Event | None:
        with self._lock:
            return self._events.get(event_id)

    def __contains__(self, event_id: object) -> bool:
        with self._lock:
            return event_id in self._events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
