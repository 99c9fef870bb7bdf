from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_EVENTS_PATH_ENV = "EDGECME_EVENTS_PATH"
_ACTIONS_PATH_ENV = "EDGECME_ACTIONS_PATH"
_FLUX_WARNING_ENV = "EDGECME_FLUX_WARNING"
_FLUX_CRITICAL_ENV = "EDGECME_FLUX_CRITICAL"
_BZ_CRITICAL_ENV = "EDGECME_BZ_CRITICAL"
_AUTO_BREAKER_ENV = "EDGECME_AUTO_BREAKER"
_ACTION_WORKERS_ENV = "EDGECME_ACTION_WORKERS"
_EVENT_PAGE_LIMIT_ENV = "EDGECME_EVENT_PAGE_LIMIT"
_ISSDC_URL_ENV = "ISSDC_API_URL"
_NOAA_URL_ENV = "NOAA_API_URL"
_FEED_RETRIES_ENV = "FEED_RETRIES"
_FEED_BACKOFF_ENV = "FEED_BACKOFF_SECONDS"
_FEED_TIMEOUT_ENV = "FEED_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    events_path: Optional[str]
    actions_path: Optional[str]
    flux_warning: float
    flux_critical: float
    bz_critical: float
    auto_breaker: bool
    action_workers: int
    event_page_limit: int
    issdc_base_url: str
    noaa_base_url: str
    feed_retries: int
    feed_backoff_seconds: float
    feed_timeout_seconds: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_non_negative_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _read_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if math.isfinite(parsed) else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        events_path=_read_optional_env(_EVENTS_PATH_ENV, "./tmp/events.json"),
        actions_path=_read_optional_env(_ACTIONS_PATH_ENV, "./tmp/actions.json"),
        flux_warning=_read_float(_FLUX_WARNING_ENV, 3000.0),
        flux_critical=_read_float(_FLUX_CRITICAL_ENV, 10000.0),
        bz_critical=_read_float(_BZ_CRITICAL_ENV, -10.0),
        auto_breaker=_read_bool(_AUTO_BREAKER_ENV, True),
        action_workers=_read_positive_int(_ACTION_WORKERS_ENV, 2),
        event_page_limit=_read_positive_int(_EVENT_PAGE_LIMIT_ENV, 50),
        issdc_base_url=_read_str_env(_ISSDC_URL_ENV, ""),
        noaa_base_url=_read_str_env(_NOAA_URL_ENV, "https://services.swpc.noaa.gov/json"),
        feed_retries=_read_non_negative_int(_FEED_RETRIES_ENV, 3),
        feed_backoff_seconds=max(_read_float(_FEED_BACKOFF_ENV, 0.3), 0.0),
        feed_timeout_seconds=_read_float(_FEED_TIMEOUT_ENV, 30.0),
        log_level=_read_log_level("INFO"),
    )
