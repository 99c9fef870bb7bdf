"""Ingestion orchestration: classify, store, broadcast and react to samples."""

from __future__ import annotations

import csv
import io
import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import uuid4

from app.schemas import (
    ActionRecord,
    ActionTrigger,
    EventRecord,
    EventSource,
    ImportResult,
    NoaaAlert,
    PullResult,
    RowError,
)
from datastore.mock_store import (
    MockCollection,
    build_default_action_collection,
    build_default_event_collection,
)
from feeds.remote import FeedError, IssdcParticleFeed, NoaaAlertFeed, RemoteFeedClient
from feeds.simulator import SAMPLE_EVENTS, EdgeSimulator
from models.records import Sample, Severity
from services import analytics
from services.aggregator import Aggregator, EventSummary
from services.breaker import BreakerActionService
from services.classifier import InvalidSample, SeverityClassifier, Thresholds
from services.feed import EventFeed
from settings import get_settings

logger = logging.getLogger(__name__)

_TIMESTAMP_KEYS = ("timestamp", "t")


class RowRejected(ValueError):
    """A single imported record could not be turned into a sample."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    return normalize_timestamp(parsed)


def normalize_timestamp(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_number(raw: Any, name: str) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise RowRejected(f"missing {name}")
    if isinstance(raw, bool):
        raise RowRejected("invalid numeric value")
    try:
        if isinstance(raw, (int, float)):
            return float(raw)
        return float(str(raw).strip())
    except (OverflowError, ValueError) as exc:
        raise RowRejected("invalid numeric value") from exc


def parse_record(record: Mapping[str, Any]) -> Sample:
    """Build a sample from a ``{timestamp|t, flux, bz}`` mapping."""
    normalized = {str(key).lower().strip(): value for key, value in record.items()}

    timestamp_raw = next(
        (normalized[key] for key in _TIMESTAMP_KEYS if normalized.get(key) not in (None, "")),
        None,
    )
    if timestamp_raw is None:
        raise RowRejected("missing timestamp")
    if isinstance(timestamp_raw, datetime):
        timestamp = normalize_timestamp(timestamp_raw)
    else:
        try:
            timestamp = parse_timestamp(str(timestamp_raw))
        except ValueError as exc:
            raise RowRejected("invalid timestamp") from exc

    flux = _parse_number(normalized.get("flux"), "flux")
    bz = _parse_number(normalized.get("bz"), "bz")
    return Sample(timestamp=timestamp, flux=flux, bz=bz)


class IngestService:
    """Coordinates classification, storage, live fan-out and breaker reactions."""

    def __init__(
        self,
        events: MockCollection[EventRecord],
        breaker: BreakerActionService,
        feed: EventFeed,
        classifier: SeverityClassifier,
        aggregator: Aggregator,
        simulator: Optional[EdgeSimulator] = None,
        issdc_feed: Optional[IssdcParticleFeed] = None,
        noaa_feed: Optional[NoaaAlertFeed] = None,
        auto_breaker: bool = True,
        workers: int = 2,
        page_limit: int = 50,
    ) -> None:
        self.events = events
        self.breaker = breaker
        self.feed = feed
        self.classifier = classifier
        self.aggregator = aggregator
        self.simulator = simulator or EdgeSimulator()
        self.issdc_feed = issdc_feed
        self.noaa_feed = noaa_feed
        self.auto_breaker = auto_breaker
        self.page_limit = page_limit
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def ingest(self, sample: Sample, source: EventSource = EventSource.api) -> EventRecord:
        """Classify and store a sample, then notify subscribers.

        Raises :class:`InvalidSample` without storing anything when the sample
        is outside the classifier's domain.
        """
        classification = self.classifier.classify(sample.flux, sample.bz)
        record = EventRecord(
            event_id=str(uuid4()),
            timestamp=normalize_timestamp(sample.timestamp),
            flux=sample.flux,
            bz=sample.bz,
            severity=classification.severity,
            confidence=classification.confidence,
            source=source,
            received_at=datetime.now(timezone.utc),
        )
        self.events.put(record)
        logger.info(
            "Event ingested",
            extra={
                "event_id": record.event_id,
                "source": source,
                "severity": record.severity,
                "confidence": record.confidence,
            },
        )
        self.feed.publish(record)

        if record.severity is Severity.critical and self.auto_breaker:
            self._dispatch_auto_breaker(record)
        return record

    def ingest_values(
        self,
        flux: float,
        bz: float,
        timestamp: Optional[datetime] = None,
        source: EventSource = EventSource.api,
    ) -> EventRecord:
        sample = Sample(
            timestamp=timestamp or datetime.now(timezone.utc),
            flux=flux,
            bz=bz,
        )
        return self.ingest(sample, source=source)

    def simulate_edge_event(self) -> EventRecord:
        sample = self.simulator.next_sample()
        analytics.track(analytics.DEMO_ACTION, source=EventSource.edge_sim)
        return self.ingest(sample, source=EventSource.edge_sim)

    def load_sample_dataset(self) -> List[EventRecord]:
        return [
            self.ingest(parse_record(item), source=EventSource.sample_dataset)
            for item in SAMPLE_EVENTS
        ]

    def import_file(self, contents: bytes | str, filename: str = "upload.csv") -> ImportResult:
        """Ingest every valid row of an uploaded CSV or JSON file."""
        if isinstance(contents, bytes):
            try:
                contents = contents.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ValueError("Uploaded file must be UTF-8 encoded.") from exc
        if not contents.strip():
            raise ValueError("Uploaded file is empty.")

        name = Path(filename or "upload.csv").name
        if name.lower().endswith(".json") or contents.lstrip()[:1] in ("[", "{"):
            rows = self._json_rows(contents)
        else:
            rows = self._csv_rows(contents)

        accepted, errors = self._ingest_rows(rows, EventSource.file_import, name)
        return ImportResult(
            filename=name,
            accepted=len(accepted),
            event_ids=[record.event_id for record in accepted],
            errors=errors,
        )

    def pull_issdc(self, t0: Optional[datetime] = None) -> PullResult:
        if self.issdc_feed is None:
            raise FeedError("ISSDC feed is not configured.")
        records = self.issdc_feed.fetch_records(t0 or datetime.now(timezone.utc))
        rows = enumerate(records, start=1)
        accepted, errors = self._ingest_rows(rows, EventSource.issdc, "issdc")
        return PullResult(
            accepted=len(accepted),
            event_ids=[record.event_id for record in accepted],
            errors=errors,
        )

    def fetch_noaa_alerts(self) -> List[NoaaAlert]:
        if self.noaa_feed is None:
            raise FeedError("NOAA feed is not configured.")
        return self.noaa_feed.fetch_alerts()

    def list_events(self, limit: Optional[int] = None) -> List[EventRecord]:
        return self.events.query(
            order_by=lambda event: (event.timestamp, event.received_at),
            limit=limit if limit is not None else self.page_limit,
        )

    def get_event(self, event_id: str) -> EventRecord:
        event = self.events.get(event_id)
        if event is None:
            raise KeyError(f"Event {event_id!r} not found.")
        return event

    def acknowledge(self, event_id: str) -> EventRecord:
        event = self.events.update(event_id, acknowledged=True)
        if event is None:
            raise KeyError(f"Event {event_id!r} not found.")
        analytics.track(
            analytics.ALERT_ACKNOWLEDGED, event_id=event_id, severity=event.severity
        )
        return event

    def trigger_breaker(self, event_id: str) -> ActionRecord:
        event = self.get_event(event_id)
        return self.breaker.trip(event, trigger=ActionTrigger.manual)

    def list_actions(self) -> List[ActionRecord]:
        return self.breaker.list_actions()

    def summarize(self) -> EventSummary:
        return self.aggregator.summarize(self.events.scan())

    def shutdown(self) -> None:
        """Stop breaker workers, end live subscriptions and close feed clients."""
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.feed.close()
        for remote in (self.issdc_feed, self.noaa_feed):
            if remote is not None:
                remote.client.close()

    def _ingest_rows(
        self,
        rows: Iterable[Tuple[int, Mapping[str, Any]]],
        source: EventSource,
        origin: str,
    ) -> Tuple[List[EventRecord], List[RowError]]:
        accepted: List[EventRecord] = []
        errors: List[RowError] = []
        for row_number, row in rows:
            try:
                sample = parse_record(row)
                accepted.append(self.ingest(sample, source=source))
            except (RowRejected, InvalidSample) as exc:
                errors.append(RowError(row_number=row_number, reason=exc.reason))
                logger.warning(
                    "Skipping row %d of %s: %s",
                    row_number,
                    origin,
                    exc.reason,
                    extra={"row_number": row_number, "reason": exc.reason, "source": source},
                )
        return accepted, errors

    @staticmethod
    def _csv_rows(text: str) -> Iterable[Tuple[int, Mapping[str, Any]]]:
        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise ValueError("CSV file is missing a header row.")

        headers = {name.lower().strip() for name in reader.fieldnames if name}
        missing = sorted({"flux", "bz"} - headers)
        if not headers.intersection(_TIMESTAMP_KEYS):
            missing.insert(0, "timestamp")
        if missing:
            raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

        # Header is row 1.
        return list(enumerate(reader, start=2))

    @staticmethod
    def _json_rows(text: str) -> Iterable[Tuple[int, Mapping[str, Any]]]:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError("Uploaded file is not valid JSON.") from exc

        if isinstance(payload, dict):
            payload = payload.get("events", payload.get("samples"))
        if not isinstance(payload, list):
            raise ValueError("JSON upload must be a list of samples.")

        rows: List[Tuple[int, Mapping[str, Any]]] = []
        for index, item in enumerate(payload, start=1):
            rows.append((index, item if isinstance(item, dict) else {}))
        return rows

    def _dispatch_auto_breaker(self, record: EventRecord) -> None:
        future = self.executor.submit(self._auto_trip, record)
        with self._futures_lock:
            self._futures[record.event_id] = future
        future.add_done_callback(lambda _f, eid=record.event_id: self._clear_future(eid))

    def _auto_trip(self, record: EventRecord) -> None:
        try:
            self.breaker.trip(record, trigger=ActionTrigger.auto)
        except Exception:  # pragma: no cover - fire-and-forget worker
            logger.exception(
                "Automatic breaker action failed", extra={"event_id": record.event_id}
            )

    def _clear_future(self, event_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(event_id, None)


def _build_remote_client(base_url: str) -> Optional[RemoteFeedClient]:
    if not base_url:
        return None
    settings = get_settings()
    return RemoteFeedClient(
        base_url,
        retries=settings.feed_retries,
        backoff=settings.feed_backoff_seconds,
        timeout=settings.feed_timeout_seconds,
    )


@lru_cache
def build_default_ingest_service() -> IngestService:
    """Factory that wires the ingest service from settings."""
    settings = get_settings()
    thresholds = Thresholds(
        flux_warning=settings.flux_warning,
        flux_critical=settings.flux_critical,
        bz_critical=settings.bz_critical,
    )
    issdc_client = _build_remote_client(settings.issdc_base_url)
    noaa_client = _build_remote_client(settings.noaa_base_url)
    return IngestService(
        events=build_default_event_collection(),
        breaker=BreakerActionService(build_default_action_collection()),
        feed=EventFeed(),
        classifier=SeverityClassifier(thresholds),
        aggregator=Aggregator(),
        issdc_feed=IssdcParticleFeed(issdc_client) if issdc_client else None,
        noaa_feed=NoaaAlertFeed(noaa_client) if noaa_client else None,
        auto_breaker=settings.auto_breaker,
        workers=settings.action_workers,
        page_limit=settings.event_page_limit,
    )
