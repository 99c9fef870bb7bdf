from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List

import httpx
import pytest

from app.schemas import EventSource
from feeds.remote import FeedError, IssdcParticleFeed, NoaaAlertFeed, RemoteFeedClient
from models.records import Severity


def _client(handler: Callable[[httpx.Request], httpx.Response], sleeps: List[float], retries: int = 3) -> RemoteFeedClient:
    return RemoteFeedClient(
        "https://feeds.test/",
        retries=retries,
        backoff=0.3,
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
    )


def test_fetch_json_retries_with_exponential_backoff() -> None:
    calls: List[httpx.Request] = []
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, json={"detail": "busy"})
        return httpx.Response(200, json={"ok": True})

    with _client(handler, sleeps) as client:
        payload = client.fetch_json("/status")

    assert payload == {"ok": True}
    assert len(calls) == 3
    assert sleeps == pytest.approx([0.3, 0.6])


def test_fetch_json_gives_up_after_all_attempts() -> None:
    calls: List[httpx.Request] = []
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler, sleeps) as client:
        with pytest.raises(FeedError, match="after 4 attempts"):
            client.fetch_json("/status")

    assert len(calls) == 4
    assert sleeps == pytest.approx([0.3, 0.6, 1.2])


def test_zero_retries_fails_immediately() -> None:
    sleeps: List[float] = []

    with _client(lambda request: httpx.Response(500), sleeps, retries=0) as client:
        with pytest.raises(FeedError):
            client.fetch_json("/status")

    assert sleeps == []


def test_missing_base_url_is_a_feed_error() -> None:
    with pytest.raises(FeedError, match="not configured"):
        RemoteFeedClient("")


def test_issdc_feed_sends_time_and_unwraps_samples() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"samples": [{"t": "2025-09-12T11:42:00Z", "flux": 4800, "bz": -8.1}, 7]}
        )

    feed = IssdcParticleFeed(_client(handler, []))
    records = feed.fetch_records(datetime(2025, 9, 12, 11, 0, tzinfo=timezone.utc))

    assert records == [{"t": "2025-09-12T11:42:00Z", "flux": 4800, "bz": -8.1}]
    assert seen[0].url.path == "/swis-aspex/particles"
    assert seen[0].url.params["time"] == "2025-09-12T11:00:00+00:00"


def test_noaa_alerts_are_parsed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/alerts.json"
        return httpx.Response(
            200,
            json=[
                {
                    "product_id": "K05W",
                    "issue_datetime": "2025-09-15 03:30:00.000",
                    "message": "WARNING: Geomagnetic K-index of 5 expected",
                }
            ],
        )

    alerts = NoaaAlertFeed(_client(handler, [])).fetch_alerts()

    assert len(alerts) == 1
    assert alerts[0].product_id == "K05W"
    assert "K-index" in alerts[0].message


def test_unexpected_noaa_payload_raises() -> None:
    feed = NoaaAlertFeed(_client(lambda request: httpx.Response(200, json={"oops": 1}), []))

    with pytest.raises(FeedError):
        feed.fetch_alerts()


def test_pull_issdc_ingests_valid_samples(build_service) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {"timestamp": "2025-09-15T03:25:00Z", "flux": 11500, "bz": -12.4},
                {"timestamp": "2025-09-15T03:26:00Z", "flux": -3, "bz": 0},
            ],
        )

    service = build_service(
        auto_breaker=False, issdc_feed=IssdcParticleFeed(_client(handler, []))
    )

    result = service.pull_issdc()

    assert result.accepted == 1
    assert [(error.row_number, error.reason) for error in result.errors] == [
        (2, "flux must be non-negative")
    ]
    stored = service.get_event(result.event_ids[0])
    assert stored.source is EventSource.issdc
    assert stored.severity is Severity.critical


def test_pull_without_configured_feed_fails(build_service) -> None:
    service = build_service()

    with pytest.raises(FeedError):
        service.pull_issdc()
    with pytest.raises(FeedError):
        service.fetch_noaa_alerts()


def test_noaa_alerts_resolve_under_swpc_json_prefix() -> None:
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=[])

    client = RemoteFeedClient(
        "https://services.swpc.noaa.gov/json",
        transport=httpx.MockTransport(handler),
        sleep=lambda _: None,
    )
    with client:
        assert NoaaAlertFeed(client).fetch_alerts() == []

    assert seen == ["/json/alerts.json"]
