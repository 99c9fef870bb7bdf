"""Product analytics events, emitted as structured log records."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("edgecme.analytics")

DEMO_ACTION = "demo_action"
ALERT_ACKNOWLEDGED = "alert_acknowledged"
BREAK_ACTION_TRIGGERED = "break_action_triggered"


def track(event_name: str, **fields: Any) -> None:
    logger.info("analytics event %s", event_name, extra={"analytics_event": event_name, **fields})
