"""
Small numeric helpers shared by the signal producers and the fusion engine.

All time values in the engine are milliseconds read from an injectable clock
(default: wall clock), so producers and the intervention state machine can be
driven deterministically in tests.
"""

import time
from typing import Callable, Optional

import numpy as np

Clock = Callable[[], float]


def now_ms() -> float:
    """Wall-clock time in milliseconds."""
    return time.time() * 1000.0


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def finite_or(value: Optional[float], default: float) -> float:
    """Return value as float, or default when it is None, NaN or infinite."""
    if value is None:
        return default
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    return v if np.isfinite(v) else default


def normalize(value: float, lo: float, hi: float) -> float:
    """
    Map value from [lo, hi] into [0, 1], clamped.

    A degenerate range (hi <= lo) or a non-finite value maps to 0.
    """
    if hi <= lo:
        return 0.0
    v = finite_or(value, lo)
    return clamp((v - lo) / (hi - lo), 0.0, 1.0)


def non_negative(value: Optional[float], default: float = 0.0) -> float:
    """Finite, non-negative float (durations and counts)."""
    return max(0.0, finite_or(value, default))
