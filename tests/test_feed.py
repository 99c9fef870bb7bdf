"""Tests for the live event feed and its subscriptions."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

import pytest

from app.schemas import EventRecord, EventSource
from models.records import Severity
from services.feed import EventFeed


def _record(event_id: str) -> EventRecord:
    now = datetime(2025, 9, 1, tzinfo=timezone.utc)
    return EventRecord(
        event_id=event_id,
        timestamp=now,
        flux=1200.0,
        bz=-3.5,
        severity=Severity.safe,
        confidence=0.21,
        source=EventSource.api,
        received_at=now,
    )


def test_subscription_receives_events_published_after_subscribe() -> None:
    feed = EventFeed()
    feed.publish(_record("before"))

    with feed.subscribe() as subscription:
        delivered = feed.publish(_record("after"))

        assert delivered == 1
        assert subscription.poll(timeout=0.1).event_id == "after"  # type: ignore[union-attr]
        assert subscription.poll(timeout=0.01) is None


def test_every_subscriber_gets_a_copy_of_the_stream() -> None:
    feed = EventFeed()
    first = feed.subscribe()
    second = feed.subscribe()

    feed.publish(_record("one"))

    assert first.poll(timeout=0.1).event_id == "one"  # type: ignore[union-attr]
    assert second.poll(timeout=0.1).event_id == "one"  # type: ignore[union-attr]


def test_closing_detaches_and_ends_iteration() -> None:
    feed = EventFeed()
    subscription = feed.subscribe()
    assert feed.subscriber_count == 1

    subscription.close()
    subscription.close()

    assert feed.subscriber_count == 0
    assert subscription.closed
    assert list(subscription) == []
    assert feed.publish(_record("ignored")) == 0


def test_context_manager_guarantees_cleanup_on_error() -> None:
    feed = EventFeed()

    with pytest.raises(RuntimeError):
        with feed.subscribe():
            raise RuntimeError("consumer crashed")

    assert feed.subscriber_count == 0


def test_iteration_is_lazy_and_unblocks_on_close() -> None:
    feed = EventFeed()
    subscription = feed.subscribe()
    received: list[str] = []

    def consume() -> None:
        for record in subscription:
            received.append(record.event_id)

    consumer = threading.Thread(target=consume)
    consumer.start()
    feed.publish(_record("a"))
    feed.publish(_record("b"))

    for _ in range(200):
        if len(received) == 2:
            break
        time.sleep(0.01)

    feed.close()
    consumer.join(timeout=2)

    assert not consumer.is_alive()
    assert received == ["a", "b"]


def test_full_queue_drops_oldest_record(caplog) -> None:
    feed = EventFeed()
    subscription = feed.subscribe(maxsize=2)

    with caplog.at_level(logging.WARNING, logger="services.feed"):
        for index in range(3):
            feed.publish(_record(f"event-{index}"))

    assert subscription.poll(timeout=0.1).event_id == "event-1"  # type: ignore[union-attr]
    assert subscription.poll(timeout=0.1).event_id == "event-2"  # type: ignore[union-attr]
    assert any("dropping oldest" in record.getMessage() for record in caplog.records)


def test_closed_feed_rejects_new_subscriptions() -> None:
    feed = EventFeed()
    existing = feed.subscribe()

    feed.close()

    assert existing.closed
    with pytest.raises(RuntimeError):
        feed.subscribe()
