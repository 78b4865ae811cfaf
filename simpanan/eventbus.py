"""Fan-out broker that broadcasts buffer events to every subscriber."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator

SUBSCRIBER_BUFFER_SIZE = 16


class EventType(str, Enum):
    """Kinds of broadcast events."""

    BUFFER_UPDATED = "buffer_updated"
    FILE_OPENED = "file_opened"
    FILE_CLOSED = "file_closed"
    ACTIVE_SWITCHED = "active_switched"
    FILE_SAVED = "file_saved"


@dataclass(frozen=True)
class Event:
    """A single broadcast payload."""

    type: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        kind = self.type.value if isinstance(self.type, EventType) else self.type
        return {"type": kind, "payload": self.payload}


class Subscription:
    """A bounded inbox of events; events arriving when it is full are dropped."""

    def __init__(self, bus: EventBus, capacity: int = SUBSCRIBER_BUFFER_SIZE) -> None:
        self._bus = bus
        self._capacity = capacity
        self._items: deque[Event] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def _offer(self, event: Event) -> bool:
        with self._cond:
            if self._closed or len(self._items) >= self._capacity:
                return False
            self._items.append(event)
            self._cond.notify()
            return True

    def _mark_closed(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def get(self, timeout: float | None = None) -> Event | None:
        """Next event; None once closed and drained.

        Raises TimeoutError if nothing arrives within timeout seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items and not self._closed:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("no event received")
                self._cond.wait(remaining)
            if self._items:
                return self._items.popleft()
            return None

    def close(self) -> None:
        """Unsubscribe from the bus. Calling it again does nothing."""
        self._bus._unsubscribe(self)

    def __iter__(self) -> Iterator[Event]:
        while (event := self.get()) is not None:
            yield event

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class EventBus:
    """Delivers every published event to all current subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[Subscription, None] = {}

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        with self._lock:
            self._subscribers[subscription] = None
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if self._subscribers.pop(subscription, False) is None:
                subscription._mark_closed()

    def publish(self, event: Event) -> None:
        """Send without blocking; slow subscribers miss the event."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription._offer(event)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)