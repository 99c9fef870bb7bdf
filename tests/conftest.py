from __future__ import annotations

import random
from concurrent.futures import wait
from typing import Callable, Iterator, List

import pytest

from app.schemas import ActionRecord, EventRecord
from datastore.mock_store import (
    MockCollection,
    build_default_action_collection,
    build_default_event_collection,
)
from feeds.simulator import EdgeSimulator
from services.aggregator import Aggregator
from services.breaker import BreakerActionService
from services.classifier import SeverityClassifier
from services.feed import EventFeed
from services.ingest import IngestService, build_default_ingest_service
from settings import get_settings

_CACHES = (
    get_settings,
    build_default_event_collection,
    build_default_action_collection,
    build_default_ingest_service,
)


@pytest.fixture(autouse=True)
def _in_memory_settings(monkeypatch) -> Iterator[None]:
    """Keep default factories from writing snapshots into the working tree."""
    monkeypatch.setenv("EDGECME_EVENTS_PATH", "")
    monkeypatch.setenv("EDGECME_ACTIONS_PATH", "")
    for cache in _CACHES:
        cache.cache_clear()
    yield
    for cache in _CACHES:
        cache.cache_clear()


@pytest.fixture
def build_service() -> Iterator[Callable[..., IngestService]]:
    created: List[IngestService] = []

    def factory(**overrides) -> IngestService:
        options = dict(
            events=MockCollection("events", EventRecord, "event_id"),
            breaker=BreakerActionService(MockCollection("actions", ActionRecord, "action_id")),
            feed=EventFeed(),
            classifier=SeverityClassifier(),
            aggregator=Aggregator(),
            simulator=EdgeSimulator(rng=random.Random(7)),
            workers=1,
        )
        options.update(overrides)
        service = IngestService(**options)
        created.append(service)
        return service

    yield factory

    for service in created:
        service.shutdown()


def await_auto_actions(service: IngestService, timeout: float = 5.0) -> None:
    with service._futures_lock:
        futures = list(service._futures.values())
    wait(futures, timeout=timeout)
