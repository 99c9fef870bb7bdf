"""In-process publisher of classified events.

Consumers open a :class:`Subscription`, which behaves as a lazy, potentially
infinite iterator over events published after it was opened. Closing a
subscription detaches it from the feed and ends iteration; a closed
subscription cannot be reopened.
"""

from __future__ import annotations

import logging
from queue import Empty, Full, Queue
from threading import Lock
from typing import Iterator, Optional

from app.schemas import EventRecord

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """A single consumer's view of the feed."""

    def __init__(self, feed: "EventFeed", maxsize: int) -> None:
        self._feed = feed
        self._queue: Queue[object] = Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._lock = Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def poll(self, timeout: Optional[float] = None) -> Optional[EventRecord]:
        """Return the next event, or ``None`` on timeout or once closed."""
        if self._closed:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except Empty:
            return None
        if item is _CLOSED or self._closed:
            return None
        return item  # type: ignore[return-value]

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._feed._detach(self)
        self._force_put(_CLOSED)

    def __iter__(self) -> Iterator[EventRecord]:
        return self

    def __next__(self) -> EventRecord:
        record = self.poll()
        if record is None:
            raise StopIteration
        return record

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _deliver(self, record: EventRecord) -> None:
        with self._lock:
            if self._closed:
                return
            if self._queue.qsize() >= self._maxsize:
                self._drop_oldest(record)
            self._force_put(record)

    def _drop_oldest(self, record: EventRecord) -> None:
        try:
            self._queue.get_nowait()
        except Empty:
            return
        logger.warning(
            "Subscriber queue full; dropping oldest event",
            extra={"event_id": record.event_id},
        )

    def _force_put(self, item: object) -> None:
        # One slot is reserved for the close marker, so this only loops when
        # a record races the marker into the last slot.
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except Full:
                try:
                    self._queue.get_nowait()
                except Empty:
                    continue


class EventFeed:
    """Fan-out of ingested events to every open subscription."""

    def __init__(self, default_maxsize: int = 100) -> None:
        self.default_maxsize = default_maxsize
        self._subscriptions: list[Subscription] = []
        self._lock = Lock()
        self._closed = False

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        size = maxsize if maxsize and maxsize > 0 else self.default_maxsize
        subscription = Subscription(self, maxsize=size)
        with self._lock:
            if self._closed:
                raise RuntimeError("Event feed is closed.")
            self._subscriptions.append(subscription)
        return subscription

    def publish(self, record: EventRecord) -> int:
        """Deliver a record to all current subscribers and return how many."""
        with self._lock:
            targets = list(self._subscriptions)
        for subscription in targets:
            subscription._deliver(record)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            targets = list(self._subscriptions)
        for subscription in targets:
            subscription.close()

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass
