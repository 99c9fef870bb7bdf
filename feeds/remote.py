"""HTTP wrappers for the ISSDC particle feed and NOAA SWPC alerts."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.schemas import NoaaAlert

logger = logging.getLogger(__name__)


class FeedError(RuntimeError):
    """Raised when a remote feed cannot be read after all retries."""


class RemoteFeedClient:
    """``httpx`` client that retries failed requests with exponential backoff."""

    def __init__(
        self,
        base_url: str,
        retries: int = 3,
        backoff: float = 0.3,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not base_url:
            raise FeedError("Feed base URL is not configured.")
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.backoff = backoff
        self._sleep = sleep
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RemoteFeedClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def fetch_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.base_url}{path}"
        last_error: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                response = self._client.get(path, params=params)
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_error = exc
                if attempt >= self.retries:
                    break
                delay = self.backoff * (2**attempt)
                logger.warning(
                    "Feed request failed, retrying in %.2fs: %s",
                    delay,
                    exc,
                    extra={"url": url, "attempt": attempt + 1},
                )
                self._sleep(delay)
        raise FeedError(
            f"Feed request to {url} failed after {self.retries + 1} attempts: {last_error}"
        ) from last_error


class IssdcParticleFeed:
    """Aditya-L1 SWIS-ASPEX particle samples published by ISSDC."""

    def __init__(self, client: RemoteFeedClient) -> None:
        self.client = client

    def fetch_records(self, t0: datetime) -> List[Dict[str, Any]]:
        payload = self.client.fetch_json(
            "/swis-aspex/particles", params={"time": t0.isoformat()}
        )
        if isinstance(payload, dict):
            payload = payload.get("samples", [])
        if not isinstance(payload, list):
            raise FeedError("Unexpected ISSDC payload shape.")
        return [item for item in payload if isinstance(item, dict)]


class NoaaAlertFeed:
    """NOAA SWPC alert bulletins used as a cross-check."""

    def __init__(self, client: RemoteFeedClient) -> None:
        self.client = client

    def fetch_alerts(self) -> List[NoaaAlert]:
        payload = self.client.fetch_json("/alerts.json")
        if not isinstance(payload, list):
            raise FeedError("Unexpected NOAA alerts payload shape.")
        return [NoaaAlert.model_validate(item) for item in payload if isinstance(item, dict)]
