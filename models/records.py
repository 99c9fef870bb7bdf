"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import NamedTuple


class Severity(str, Enum):
    """Risk tier assigned to a sample, ordered Safe < Warning < Critical."""

    safe = "Safe"
    warning = "Warning"
    critical = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def highest(cls, *tiers: "Severity") -> "Severity":
        return max(tiers, key=lambda tier: tier.rank, default=cls.safe)


_SEVERITY_RANKS = {
    Severity.safe: 0,
    Severity.warning: 1,
    Severity.critical: 2,
}


@dataclass(frozen=True, slots=True)
class Sample:
    """A single particle-flux / Bz observation delivered by a feed."""

    timestamp: datetime
    flux: float
    bz: float


class Classification(NamedTuple):
    """Severity tier and confidence derived from exactly one sample."""

    severity: Severity
    confidence: float
