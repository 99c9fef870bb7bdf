"""HTTP route definitions for the service."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from app.schemas import (
    ActionRecord,
    ClassificationOut,
    EventRecord,
    EventSummaryOut,
    ImportResult,
    NoaaAlert,
    PullResult,
    SampleIn,
)
from feeds.remote import FeedError
from services.classifier import InvalidSample
from services.feed import Subscription
from services.ingest import IngestService, build_default_ingest_service

router = APIRouter()

_HEARTBEAT_SECONDS = 15.0


def get_ingest_service() -> IngestService:
    return build_default_ingest_service()


def _bad_sample(exc: InvalidSample) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])


def _feed_unavailable(exc: FeedError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


def _sse_line(record: EventRecord) -> str:
    return f"event: sample\ndata: {json.dumps(record.model_dump(mode='json'))}\n\n"


@router.get(
    "/classify",
    response_model=ClassificationOut,
    summary="Classify a flux/Bz pair without storing it.",
)
async def classify_sample(
    flux: float = Query(..., description="Particle flux reading."),
    bz: float = Query(..., description="IMF Bz in nT."),
    service: IngestService = Depends(get_ingest_service),
) -> ClassificationOut:
    try:
        severity, confidence = service.classifier.classify(flux, bz)
    except InvalidSample as exc:
        raise _bad_sample(exc) from exc
    return ClassificationOut(severity=severity, confidence=confidence)


@router.post(
    "/events",
    status_code=status.HTTP_201_CREATED,
    response_model=EventRecord,
    summary="Ingest a single sample.",
)
async def create_event(
    sample: SampleIn,
    service: IngestService = Depends(get_ingest_service),
) -> EventRecord:
    try:
        return service.ingest_values(sample.flux, sample.bz, timestamp=sample.timestamp)
    except InvalidSample as exc:
        raise _bad_sample(exc) from exc


@router.post(
    "/events/simulate",
    status_code=status.HTTP_201_CREATED,
    response_model=EventRecord,
    summary="Ingest one sample from the simulated edge node.",
)
async def simulate_event(service: IngestService = Depends(get_ingest_service)) -> EventRecord:
    return service.simulate_edge_event()


@router.post(
    "/events/samples",
    status_code=status.HTTP_201_CREATED,
    response_model=List[EventRecord],
    summary="Ingest the bundled reference events.",
)
async def load_samples(service: IngestService = Depends(get_ingest_service)) -> List[EventRecord]:
    return service.load_sample_dataset()


@router.post(
    "/events/import",
    response_model=ImportResult,
    summary="Import samples from a CSV or JSON file.",
)
async def import_events(
    file: UploadFile = File(..., description="CSV or JSON file of timestamp/flux/bz samples."),
    service: IngestService = Depends(get_ingest_service),
) -> ImportResult:
    contents = await file.read()
    try:
        return service.import_file(contents, filename=file.filename or "upload.csv")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    finally:
        await file.close()


@router.get(
    "/events",
    response_model=List[EventRecord],
    summary="List recent events, newest first.",
)
async def list_events(
    limit: Optional[int] = Query(None, ge=1, le=500),
    service: IngestService = Depends(get_ingest_service),
) -> List[EventRecord]:
    return service.list_events(limit)


@router.get(
    "/events/stream",
    summary="Server-Sent Events stream of newly ingested events.",
)
async def stream_events(
    request: Request,
    service: IngestService = Depends(get_ingest_service),
) -> StreamingResponse:
    try:
        subscription = service.feed.subscribe()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return StreamingResponse(
        _event_stream(request, subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


async def _event_stream(request: Request, subscription: Subscription) -> AsyncIterator[str]:
    try:
        while not subscription.closed:
            if await request.is_disconnected():
                break
            record = await asyncio.to_thread(subscription.poll, _HEARTBEAT_SECONDS)
            if record is None:
                yield ": keep-alive\n\n"
                continue
            yield _sse_line(record)
    finally:
        subscription.close()


@router.get(
    "/events/{event_id}",
    response_model=EventRecord,
    summary="Fetch a single event.",
)
async def get_event(
    event_id: str,
    service: IngestService = Depends(get_ingest_service),
) -> EventRecord:
    try:
        return service.get_event(event_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.post(
    "/events/{event_id}/ack",
    response_model=EventRecord,
    summary="Acknowledge an alert.",
)
async def acknowledge_event(
    event_id: str,
    service: IngestService = Depends(get_ingest_service),
) -> EventRecord:
    try:
        return service.acknowledge(event_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.post(
    "/events/{event_id}/breaker",
    status_code=status.HTTP_201_CREATED,
    response_model=ActionRecord,
    summary="Send a simulated breaker trip for an event.",
)
async def trigger_breaker(
    event_id: str,
    service: IngestService = Depends(get_ingest_service),
) -> ActionRecord:
    try:
        return service.trigger_breaker(event_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/actions",
    response_model=List[ActionRecord],
    summary="Breaker action log, newest first.",
)
async def list_actions(service: IngestService = Depends(get_ingest_service)) -> List[ActionRecord]:
    return service.list_actions()


@router.get(
    "/summary",
    response_model=EventSummaryOut,
    summary="Dashboard summary of stored events.",
)
async def event_summary(service: IngestService = Depends(get_ingest_service)) -> EventSummaryOut:
    summary = service.summarize()
    return EventSummaryOut(
        total=summary.total,
        per_severity=dict(summary.per_severity),
        peak_flux=summary.peak_flux,
        min_bz=summary.min_bz,
        latest_severity=summary.latest_severity,
        latest_timestamp=summary.latest_timestamp,
        unacknowledged_critical=summary.unacknowledged_critical,
    )


@router.post(
    "/feeds/issdc/pull",
    response_model=PullResult,
    summary="Pull particle samples from ISSDC and ingest them.",
)
async def pull_issdc(
    time: Optional[datetime] = Query(None, description="Start time (ISO-8601)."),
    service: IngestService = Depends(get_ingest_service),
) -> PullResult:
    try:
        return await asyncio.to_thread(service.pull_issdc, time)
    except FeedError as exc:
        raise _feed_unavailable(exc) from exc


@router.get(
    "/feeds/noaa/alerts",
    response_model=List[NoaaAlert],
    summary="Current NOAA SWPC alerts for cross-checking.",
)
async def noaa_alerts(service: IngestService = Depends(get_ingest_service)) -> List[NoaaAlert]:
    try:
        return await asyncio.to_thread(service.fetch_noaa_alerts)
    except FeedError as exc:
        raise _feed_unavailable(exc) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
