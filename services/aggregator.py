"""Dashboard summary over stored events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable

from app.schemas import EventRecord
from models.records import Severity


@dataclass
class EventSummary:
    """Counts and extremes for a batch of classified events."""

    total: int = 0
    per_severity: Dict[Severity, int] = field(
        default_factory=lambda: {tier: 0 for tier in Severity}
    )
    peak_flux: float | None = None
    min_bz: float | None = None
    latest_severity: Severity | None = None
    latest_timestamp: datetime | None = None
    unacknowledged_critical: int = 0


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def summarize(self, events: Iterable[EventRecord]) -> EventSummary:
        summary = EventSummary()

        for event in events:
            summary.total += 1
            summary.per_severity[event.severity] += 1

            if summary.peak_flux is None or event.flux > summary.peak_flux:
                summary.peak_flux = event.flux
            if summary.min_bz is None or event.bz < summary.min_bz:
                summary.min_bz = event.bz

            if summary.latest_timestamp is None or event.timestamp >= summary.latest_timestamp:
                summary.latest_timestamp = event.timestamp
                summary.latest_severity = event.severity

            if event.severity is Severity.critical and not event.acknowledged:
                summary.unacknowledged_critical += 1

        return summary
