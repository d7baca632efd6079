"""
In-process change feed for remote table events.

The record store client publishes a ChangeEvent after each write it makes;
views and caches subscribe per table and re-fetch when notified. Events are
advisory: they say "something changed", not what the new state is.

Usage::

    feed = ChangeFeed()
    sub = feed.subscribe("voters", lambda event: cache.invalidate("voters"))
    feed.publish(ChangeEvent("voters", "INSERT", ("42",)))
    sub.unsubscribe()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")
ALL_TABLES = "*"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    record_ids: tuple[str, ...] = ()
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.event_type}")


Callback = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(self, feed: "ChangeFeed", table: str, callback: Callback,
                 events: frozenset[str]) -> None:
        self._feed = feed
        self.table = table
        self.callback = callback
        self.events = events
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        return (
            self.active
            and self.table in (event.table, ALL_TABLES)
            and event.event_type in self.events
        )

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._feed._remove(self)


class ChangeFeed:
    """Thread-safe publish/subscribe hub keyed by table name."""

    def __init__(self) -> None:
        self._subs: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Callback,
                  events: Iterable[str] = EVENT_TYPES) -> Subscription:
        wanted = frozenset(events)
        unknown = wanted - set(EVENT_TYPES)
        if unknown:
            raise ValueError(f"Unknown event type(s): {sorted(unknown)}")
        sub = Subscription(self, table, callback, wanted)
        with self._lock:
            self._subs.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver *event* to matching subscribers in subscription order.

        A failing callback is logged and does not prevent delivery to the
        rest. Returns the number of callbacks that ran without error.
        """
        with self._lock:
            targets = [s for s in self._subs if s.matches(event)]
        delivered = 0
        for sub in targets:
            try:
                sub.callback(event)
                delivered += 1
            except Exception:
                logger.exception("Change subscriber for %s failed on %s",
                                 event.table, event.event_type)
        return delivered

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subs)
            return sum(1 for s in self._subs if s.table == table)

    def close(self) -> None:
        with self._lock:
            for sub in self._subs:
                sub.active = False
            self._subs.clear()
