"""Simulated edge-node samples and the bundled reference dataset."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from models.records import Sample

# Reference events recorded during early testing of the dashboard.
SAMPLE_EVENTS: tuple[dict[str, object], ...] = (
    {"t": "2025-09-01T06:12:00Z", "flux": 1200, "bz": -3.5},
    {"t": "2025-09-12T11:42:00Z", "flux": 4800, "bz": -8.1},
    {"t": "2025-09-15T03:25:00Z", "flux": 11500, "bz": -12.4},
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EdgeSimulator:
    """Generates samples the way a Jetson/RPi edge node would report them.

    Flux is drawn uniformly from ``[flux_min, flux_max)`` and rounded to a
    whole count; Bz is southward, uniformly within ``[-bz_span, 0]``.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
        flux_min: float = 1000.0,
        flux_max: float = 10000.0,
        bz_span: float = 15.0,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock
        self.flux_min = flux_min
        self.flux_max = flux_max
        self.bz_span = bz_span

    def next_sample(self) -> Sample:
        flux = round(self.flux_min + self._rng.random() * (self.flux_max - self.flux_min))
        bz = -1 * (self._rng.random() * self.bz_span)
        return Sample(timestamp=self._clock(), flux=float(flux), bz=round(bz, 2))

    def __iter__(self) -> Iterator[Sample]:
        while True:
            yield self.next_sample()
