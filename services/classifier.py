"""Severity classification for particle-flux and Bz samples.

The classifier is a pure function: no I/O, no state shared between calls, so
it can be called from any thread (or ported to an edge node) unchanged.

Each signal is scored on its own. A signal's tier comes from the thresholds
(inclusive) and its score is placed inside that tier's confidence band
according to how far past the tier's lower threshold it lies. The sample
takes the higher tier and the larger score. Bands are contiguous, so the score
never drops when a value crosses into the next tier.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real

from models.records import Classification, Severity

# Lower edge and width of each tier's confidence band.
_BANDS = {
    Severity.safe: (0.0, 0.3),
    Severity.warning: (0.3, 0.4),
    Severity.critical: (0.7, 0.3),
}


class InvalidSample(ValueError):
    """Raised when a sample is outside the classifier's input domain."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid sample: {reason}")
        self.reason = reason


@dataclass(frozen=True)
class Thresholds:
    """Tier boundaries. ``bz_critical`` is negative (southward)."""

    flux_warning: float = 3000.0
    flux_critical: float = 10000.0
    bz_critical: float = -10.0

    def __post_init__(self) -> None:
        for name in ("flux_warning", "flux_critical", "bz_critical"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite.")
        if self.flux_warning <= 0:
            raise ValueError("flux_warning must be positive.")
        if self.flux_critical <= self.flux_warning:
            raise ValueError("flux_critical must exceed flux_warning.")
        if self.bz_critical >= 0:
            raise ValueError("bz_critical must be negative (southward).")

    @property
    def bz_warning(self) -> float:
        return self.bz_critical / 2


DEFAULT_THRESHOLDS = Thresholds()


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _band_score(tier: Severity, progress: float) -> float:
    start, width = _BANDS[tier]
    return start + width * _clamp(progress)


def _check_number(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidSample(f"{name} must be a number")
    try:
        as_float = float(value)
    except OverflowError as exc:
        raise InvalidSample(f"{name} must be finite") from exc
    if not math.isfinite(as_float):
        raise InvalidSample(f"{name} must be finite")
    return as_float


def validate_sample(flux: object, bz: object) -> tuple[float, float]:
    """Return ``(flux, bz)`` as floats or raise :class:`InvalidSample`."""
    flux_value = _check_number("flux", flux)
    bz_value = _check_number("bz", bz)
    if flux_value < 0:
        raise InvalidSample("flux must be non-negative")
    return flux_value, bz_value


def score_flux(flux: float, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> tuple[Severity, float]:
    warn, crit = thresholds.flux_warning, thresholds.flux_critical
    if flux >= crit:
        return Severity.critical, _band_score(Severity.critical, (flux - crit) / crit)
    if flux >= warn:
        return Severity.warning, _band_score(Severity.warning, (flux - warn) / (crit - warn))
    return Severity.safe, _band_score(Severity.safe, flux / warn)


def score_bz(bz: float, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> tuple[Severity, float]:
    # Work with southward magnitude; northward field contributes nothing.
    southward = max(-bz, 0.0)
    warn, crit = -thresholds.bz_warning, -thresholds.bz_critical
    if southward >= crit:
        return Severity.critical, _band_score(Severity.critical, (southward - crit) / crit)
    if southward >= warn:
        return Severity.warning, _band_score(Severity.warning, (southward - warn) / (crit - warn))
    return Severity.safe, _band_score(Severity.safe, southward / warn)


def classify(flux: float, bz: float, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> Classification:
    """Classify one sample into a severity tier with a confidence in [0, 1]."""
    flux_value, bz_value = validate_sample(flux, bz)
    flux_tier, flux_score = score_flux(flux_value, thresholds)
    bz_tier, bz_score = score_bz(bz_value, thresholds)
    return Classification(
        severity=Severity.highest(flux_tier, bz_tier),
        confidence=round(max(flux_score, bz_score), 4),
    )


class SeverityClassifier:
    """Binds a set of thresholds so services can inject the classifier."""

    def __init__(self, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> None:
        self.thresholds = thresholds

    def classify(self, flux: float, bz: float) -> Classification:
        return classify(flux, bz, self.thresholds)
