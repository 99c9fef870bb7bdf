"""Pydantic schemas for the HTTP API layer and the mock collections."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import Severity


class EventSource(str, Enum):
    """Where an ingested sample came from."""

    api = "api"
    edge_sim = "edge-sim"
    sample_dataset = "sample-dataset"
    file_import = "import"
    issdc = "issdc"


class ActionTrigger(str, Enum):
    manual = "manual"
    auto = "auto"


class ActionStatus(str, Enum):
    completed = "completed"
    failed = "failed"


class SampleIn(BaseModel):
    """Sample posted by an ingestion feed. Domain validation happens in the classifier."""

    timestamp: Optional[datetime] = Field(
        default=None, description="Observation time (ISO-8601); defaults to receipt time."
    )
    flux: float = Field(..., description="Particle flux reading.")
    bz: float = Field(..., description="IMF Bz component in nT, negative is southward.")


class ClassificationOut(BaseModel):
    severity: Severity
    confidence: float = Field(..., ge=0.0, le=1.0)


class EventRecord(BaseModel):
    """A classified sample as stored in the ``events`` collection."""

    event_id: str
    timestamp: datetime
    flux: float
    bz: float
    severity: Severity
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: EventSource
    received_at: datetime
    acknowledged: bool = False


class ActionRecord(BaseModel):
    """Outcome of a simulated breaker command stored in the ``actions`` collection."""

    action_id: str
    event_id: str
    action: str = "breaker_trip"
    trigger: ActionTrigger
    status: ActionStatus
    requested_at: datetime
    completed_at: Optional[datetime] = None
    detail: Optional[str] = None


class RowError(BaseModel):
    """Details about an imported row that failed validation or parsing."""

    row_number: int = Field(..., ge=1)
    reason: str


class ImportResult(BaseModel):
    filename: str
    accepted: int = Field(..., ge=0)
    event_ids: List[str] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)


class PullResult(BaseModel):
    accepted: int = Field(..., ge=0)
    event_ids: List[str] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)


class EventSummaryOut(BaseModel):
    total: int = Field(..., ge=0)
    per_severity: Dict[Severity, int] = Field(default_factory=dict)
    peak_flux: Optional[float] = None
    min_bz: Optional[float] = None
    latest_severity: Optional[Severity] = None
    latest_timestamp: Optional[datetime] = None
    unacknowledged_critical: int = 0


class NoaaAlert(BaseModel):
    product_id: Optional[str] = None
    issue_datetime: Optional[str] = None
    message: str = ""
