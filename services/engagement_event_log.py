"""
In-memory log of engagement events for the current session.

Fired interventions (and, optionally, producer updates) are appended here by
the engagement session; HTTP consumers poll them via
GET /engagement/interventions. Bounded ring buffer; cleared on session reset
and when detection stops. Nothing is persisted.
"""

import threading
from collections import deque
from typing import Any, Dict, List, Optional

import config

EVENT_TYPES = ("audio", "behavioral", "vision", "intervention")

_events: deque = deque(maxlen=config.ENGAGEMENT_EVENT_LOG_SIZE)
_events_lock = threading.Lock()
_last_polled_index = 0
_total_appended = 0


def append_event(event_type: str, data: Dict[str, Any], timestamp: float) -> None:
    """
    Append one event {type, data, timestamp}. Unknown types raise ValueError.
    """
    global _total_appended
    if event_type not in EVENT_TYPES:
        raise ValueError(f"event_type must be one of {', '.join(EVENT_TYPES)}")
    with _events_lock:
        _events.append({"type": event_type, "data": data, "timestamp": timestamp, "seq": _total_appended})
        _total_appended += 1


def get_recent_events(event_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """All buffered events (oldest first), optionally filtered by type. Thread-safe."""
    with _events_lock:
        snap = list(_events)
    return [e for e in snap if event_type is None or e["type"] == event_type]


def get_and_mark_new_interventions() -> List[Dict[str, Any]]:
    """
    Intervention events appended since the previous call (oldest first).
    Used by polling consumers so each fired intervention is delivered once.
    """
    global _last_polled_index
    with _events_lock:
        fresh = [e for e in _events if e["seq"] >= _last_polled_index and e["type"] == "intervention"]
        _last_polled_index = _total_appended
    return fresh


def clear_events() -> None:
    """Clear stored events (e.g. on reset or when detection stops)."""
    global _last_polled_index
    with _events_lock:
        _events.clear()
        _last_polled_index = _total_appended
