"""Simulated breaker trips for critical space-weather events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from app.schemas import ActionRecord, ActionStatus, ActionTrigger, EventRecord
from datastore.mock_store import MockCollection
from services import analytics

logger = logging.getLogger(__name__)


class BreakerActionService:
    """Records simulated SCADA breaker commands; no device is ever contacted."""

    def __init__(self, actions: MockCollection[ActionRecord]) -> None:
        self.actions = actions

    def trip(self, event: EventRecord, trigger: ActionTrigger = ActionTrigger.manual) -> ActionRecord:
        requested_at = datetime.now(timezone.utc)
        action_id = str(uuid4())
        record = ActionRecord(
            action_id=action_id,
            event_id=event.event_id,
            trigger=trigger,
            status=ActionStatus.completed,
            requested_at=requested_at,
            completed_at=datetime.now(timezone.utc),
            detail=(
                f"Simulated breaker open for {event.severity.value} event "
                f"(flux={event.flux:g}, bz={event.bz:g})."
            ),
        )
        self.actions.put(record)
        logger.info(
            "Breaker action recorded",
            extra={
                "action_id": action_id,
                "event_id": event.event_id,
                "trigger": trigger,
                "severity": event.severity,
            },
        )
        analytics.track(
            analytics.BREAK_ACTION_TRIGGERED,
            event_id=event.event_id,
            action_id=action_id,
            trigger=trigger,
        )
        return record

    def list_actions(self) -> list[ActionRecord]:
        return self.actions.query(order_by=lambda action: action.requested_at)
