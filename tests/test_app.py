import asyncio
import threading
import time
import uuid
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.api import _event_stream
from app.main import create_app
from conftest import await_auto_actions
from feeds.simulator import SAMPLE_EVENTS
from services.ingest import IngestService, build_default_ingest_service, parse_record


@pytest.fixture
def service(build_service) -> IngestService:
    return build_service()


@pytest.fixture
def api_client(service: IngestService, monkeypatch) -> Iterator[TestClient]:
    def build_test_service() -> IngestService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_ingest_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_ingest_service", build_test_service)
    monkeypatch.setattr("app.web.build_default_ingest_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_shuts_down_service_and_clears_cache() -> None:
    app = create_app()

    with TestClient(app):
        service_during = build_default_ingest_service()
        assert service_during.executor._shutdown is False

    assert service_during.executor._shutdown is True
    service_after = build_default_ingest_service()
    try:
        assert service_after is not service_during
        assert service_after.executor._shutdown is False
    finally:
        service_after.shutdown()
        build_default_ingest_service.cache_clear()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").status_code == 200


def test_classify_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/classify", params={"flux": 4800, "bz": -8.1})

    assert response.status_code == 200
    body = response.json()
    assert body["severity"] == "Warning"
    assert body["confidence"] == pytest.approx(0.548, abs=1e-4)


def test_classify_rejects_negative_flux(api_client: TestClient) -> None:
    response = api_client.get("/classify", params={"flux": -1, "bz": 0})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid sample: flux must be non-negative"


def test_create_and_fetch_event(api_client: TestClient) -> None:
    response = api_client.post(
        "/events",
        json={"timestamp": "2025-09-01T06:12:00Z", "flux": 1200, "bz": -3.5},
    )

    assert response.status_code == 201
    created = response.json()
    assert created["severity"] == "Safe"
    assert created["source"] == "api"
    assert created["acknowledged"] is False
    assert created["timestamp"].startswith("2025-09-01T06:12:00")

    fetched = api_client.get(f"/events/{created['event_id']}")
    assert fetched.status_code == 200
    assert fetched.json() == created


def test_create_event_defaults_timestamp(api_client: TestClient) -> None:
    response = api_client.post("/events", json={"flux": 100, "bz": 1})

    assert response.status_code == 201
    assert response.json()["timestamp"]


def test_create_event_rejects_invalid_sample(api_client: TestClient) -> None:
    response = api_client.post("/events", json={"flux": -1, "bz": 0})

    assert response.status_code == 400
    assert "non-negative" in response.json()["detail"]
    assert api_client.get("/events").json() == []


def test_create_event_requires_fields(api_client: TestClient) -> None:
    response = api_client.post("/events", json={"flux": 100})

    assert response.status_code == 422


def test_get_missing_event_returns_not_found(api_client: TestClient) -> None:
    missing_id = str(uuid.uuid4())
    response = api_client.get(f"/events/{missing_id}")

    assert response.status_code == 404
    assert missing_id in response.json()["detail"]


def test_sample_dataset_listing_and_auto_breaker(api_client: TestClient, service: IngestService) -> None:
    response = api_client.post("/events/samples")
    assert response.status_code == 201
    assert [event["severity"] for event in response.json()] == ["Safe", "Warning", "Critical"]

    listed = api_client.get("/events").json()
    assert [event["severity"] for event in listed] == ["Critical", "Warning", "Safe"]
    assert len(api_client.get("/events", params={"limit": 1}).json()) == 1

    await_auto_actions(service)
    actions = api_client.get("/actions").json()
    assert len(actions) == 1
    assert actions[0]["trigger"] == "auto"
    assert actions[0]["event_id"] == listed[0]["event_id"]


def test_manual_breaker_and_acknowledge(api_client: TestClient, service: IngestService) -> None:
    created = api_client.post("/events", json={"flux": 11500, "bz": -12.4}).json()
    await_auto_actions(service)

    tripped = api_client.post(f"/events/{created['event_id']}/breaker")
    assert tripped.status_code == 201
    assert tripped.json()["trigger"] == "manual"
    assert tripped.json()["status"] == "completed"

    summary = api_client.get("/summary").json()
    assert summary["unacknowledged_critical"] == 1

    acked = api_client.post(f"/events/{created['event_id']}/ack")
    assert acked.status_code == 200
    assert acked.json()["acknowledged"] is True

    summary = api_client.get("/summary").json()
    assert summary["total"] == 1
    assert summary["per_severity"]["Critical"] == 1
    assert summary["unacknowledged_critical"] == 0

    assert api_client.post("/events/missing/breaker").status_code == 404
    assert api_client.post("/events/missing/ack").status_code == 404


def test_simulate_endpoint(api_client: TestClient) -> None:
    response = api_client.post("/events/simulate")

    assert response.status_code == 201
    assert response.json()["source"] == "edge-sim"


def test_import_endpoint_reports_row_errors(api_client: TestClient) -> None:
    csv_content = """timestamp,flux,bz
2025-09-01T06:12:00Z,1200,-3.5
2025-09-01T06:13:00Z,oops,-3.5
"""

    response = api_client.post(
        "/events/import",
        files={"file": ("readings.csv", csv_content, "text/csv")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["accepted"] == 1
    assert body["errors"] == [{"row_number": 3, "reason": "invalid numeric value"}]


def test_import_endpoint_keeps_going_past_oversized_number(api_client: TestClient) -> None:
    body = (
        '[{"t": "2025-09-01T06:12:00Z", "flux": 1200, "bz": -3.5},'
        ' {"t": "2025-09-01T06:13:00Z", "flux": 1' + "0" * 400 + ', "bz": 0}]'
    )

    response = api_client.post(
        "/events/import",
        files={"file": ("huge.json", body, "application/json")},
    )

    assert response.status_code == 200
    assert response.json()["accepted"] == 1
    assert response.json()["errors"] == [{"row_number": 2, "reason": "invalid numeric value"}]


def test_import_empty_file_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post(
        "/events/import",
        files={"file": ("empty.csv", b"", "text/csv")},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Uploaded file is empty."


def test_unconfigured_feeds_return_bad_gateway(api_client: TestClient) -> None:
    pulled = api_client.post("/feeds/issdc/pull")
    alerts = api_client.get("/feeds/noaa/alerts")

    assert pulled.status_code == 502
    assert "ISSDC" in pulled.json()["detail"]
    assert alerts.status_code == 502


def _wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def test_event_stream_sends_sample_frames(api_client: TestClient, service: IngestService) -> None:
    def publish_then_close() -> None:
        try:
            if _wait_for(lambda: service.feed.subscriber_count == 1):
                service.ingest(parse_record(SAMPLE_EVENTS[0]))
                subscription = service.feed._subscriptions[0]
                _wait_for(subscription._queue.empty)
        finally:
            service.feed.close()

    worker = threading.Thread(target=publish_then_close)
    worker.start()
    response = api_client.get("/events/stream")
    worker.join(timeout=10)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = [frame for frame in response.text.split("\n\n") if frame]
    assert frames[0].startswith("event: sample\ndata: ")
    assert '"severity": "Safe"' in frames[0]
    assert all(frame == ": keep-alive" for frame in frames[1:])
    assert service.feed.subscriber_count == 0


class _DisconnectingRequest:
    def __init__(self, connected_checks: int) -> None:
        self.remaining = connected_checks

    async def is_disconnected(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def test_event_stream_closes_subscription_on_disconnect(service: IngestService) -> None:
    subscription = service.feed.subscribe()
    service.ingest(parse_record(SAMPLE_EVENTS[1]))

    async def collect() -> list:
        return [frame async for frame in _event_stream(_DisconnectingRequest(1), subscription)]

    frames = asyncio.run(collect())

    assert len(frames) == 1
    assert frames[0].startswith("event: sample\n")
    assert subscription.closed is True
    assert service.feed.subscriber_count == 0
