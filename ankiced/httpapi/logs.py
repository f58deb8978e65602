"""In-memory fan-out of log events to stream subscribers."""

from __future__ import annotations

import itertools
import threading
from collections import deque
from typing import Iterator, Optional

from ankiced.models import LogEvent

# Number of most recent events kept for replay.
BUFFER_LIMIT = 1000

# Number of undelivered events a single subscriber may hold; newer ones are dropped.
SUBSCRIBER_CAPACITY = 64


class _Subscription:
    """A bounded queue of events published after subscribing."""

    def __init__(self, hub: "LogHub", sub_id: int, capacity: int) -> None:
        self._hub = hub
        self._id = sub_id
        self._capacity = capacity
        self._items: deque[LogEvent] = deque()
        self._cond = threading.Condition()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def _offer(self, event: LogEvent) -> bool:
        with self._cond:
            if self._closed or len(self._items) >= self._capacity:
                return False
            self._items.append(event)
            self._cond.notify()
            return True

    def _shutdown(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[LogEvent]:
        """Return the next event, or ``None`` on timeout or once closed and drained."""
        with self._cond:
            self._cond.wait_for(lambda: bool(self._items) or self._closed, timeout)
            if self._items:
                return self._items.popleft()
            return None

    def close(self) -> None:
        """Stop receiving events."""
        self._hub._unsubscribe(self._id)

    def __iter__(self) -> Iterator[LogEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> "_Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class LogHub:
    """Keeps recent log events and forwards new ones to subscribers."""

    def __init__(
        self,
        buffer_limit: int = BUFFER_LIMIT,
        subscriber_capacity: int = SUBSCRIBER_CAPACITY,
    ) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count()
        self._subs: dict[int, _Subscription] = {}
        self._buffer: deque[LogEvent] = deque(maxlen=buffer_limit)
        self._subscriber_capacity = subscriber_capacity

    def subscribe(self) -> _Subscription:
        """Register a subscriber; close it (or use it as a context manager) when done."""
        with self._lock:
            sub_id = next(self._ids)
            sub = _Subscription(self, sub_id, self._subscriber_capacity)
            self._subs[sub_id] = sub
            return sub

    def _unsubscribe(self, sub_id: int) -> None:
        with self._lock:
            sub = self._subs.pop(sub_id, None)
        if sub is not None:
            sub._shutdown()

    def publish(self, event: LogEvent) -> None:
        """Record ``event`` and hand it to every subscriber with room for it."""
        with self._lock:
            self._buffer.append(event)
            for sub in self._subs.values():
                sub._offer(event)

    def since(self, event_id: int) -> list[LogEvent]:
        """Return buffered events whose id is greater than ``event_id``."""
        with self._lock:
            return [event for event in self._buffer if event.id > event_id]