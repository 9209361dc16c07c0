"""
State Vector: the fused, normalized picture of a learner at one instant.

Five dimensions in [0, 1] (None when no source can speak to them), a
per-dimension confidence record, the tick timestamp (ms) and the set of
sources that contributed. Instances are immutable; every recomputation
produces a new one that supersedes the previous.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional

DIMENSIONS = ("attention", "engagement", "confusion", "frustration", "fatigue")


class SignalSource(Enum):
    """Signal producers that can contribute to the State Vector."""
    AUDIO = "audio"
    BEHAVIORAL = "behavioral"
    VISION = "vision"


@dataclass(frozen=True)
class DimensionConfidence:
    """Confidence (0-1) for each dimension plus an overall value."""
    attention: float = 0.0
    engagement: float = 0.0
    confusion: float = 0.0
    frustration: float = 0.0
    fatigue: float = 0.0
    overall: float = 0.0

    def to_dict(self) -> dict:
        return {
            "attention": self.attention,
            "engagement": self.engagement,
            "confusion": self.confusion,
            "frustration": self.frustration,
            "fatigue": self.fatigue,
            "overall": self.overall,
        }


@dataclass(frozen=True)
class StateVector:
    """Fused learner state for one tick."""
    attention: Optional[float] = None
    engagement: Optional[float] = None
    confusion: Optional[float] = None
    frustration: Optional[float] = None
    fatigue: Optional[float] = None
    confidence: DimensionConfidence = field(default_factory=DimensionConfidence)
    timestamp: float = 0.0
    sources: FrozenSet[SignalSource] = frozenset()

    @classmethod
    def empty(cls, timestamp: float = 0.0) -> "StateVector":
        """All dimensions null, zero confidence, no sources."""
        return cls(timestamp=timestamp)

    def to_dict(self) -> dict:
        """JSON-friendly form (camelCase keys, sources sorted by name)."""
        return {
            "attention": self.attention,
            "engagement": self.engagement,
            "confusion": self.confusion,
            "frustration": self.frustration,
            "fatigue": self.fatigue,
            "confidence": self.confidence.to_dict(),
            "timestamp": self.timestamp,
            "sources": sorted(s.value for s in self.sources),
        }


def format_percent(value: Optional[float]) -> str:
    """0.456 -> '46%'; None -> 'N/A'. Halves round up."""
    if value is None:
        return "N/A"
    return f"{int(math.floor(value * 100 + 0.5))}%"


def build_summary(vector: StateVector, vision_enabled: bool, vision_consent: bool) -> dict:
    """Human-readable digest of a State Vector for dashboards and logs."""
    return {
        "attention": format_percent(vector.attention),
        "engagement": format_percent(vector.engagement),
        "confusion": format_percent(vector.confusion),
        "fatigue": format_percent(vector.fatigue),
        "sources": ", ".join(sorted(s.value for s in vector.sources)) or "none",
        "confidence": format_percent(vector.confidence.overall),
        "visionEnabled": bool(vision_enabled),
        "visionConsent": bool(vision_consent),
    }
