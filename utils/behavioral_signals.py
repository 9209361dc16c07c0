"""
Behavioral Signal Producer.

Tracks how the learner behaves on the lesson page: time on page, tab
visibility, idle time, scroll rate, video playback ratio, quiz timing and
accuracy, and how fast teaching moments are dismissed. The playback surface
and page call the intake methods; refresh() recomputes the time-based fields
once per second.
"""

import logging
import math
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional

from utils.signal_math import Clock, non_negative, now_ms

logger = logging.getLogger(__name__)

# Scroll activity is measured over a window that restarts every minute.
SCROLL_WINDOW_MS = 60000.0


@dataclass(frozen=True)
class BehavioralSignals:
    """Immutable snapshot of page and playback behavior."""
    time_on_page: float = 0.0  # seconds
    is_tab_visible: bool = True
    time_since_last_interaction: float = 0.0  # ms
    scroll_activity_rate: float = 0.0  # scrolls per minute
    video_play_ratio: float = 0.0  # played / elapsed playback time, 0-1
    quiz_response_time_ms: Optional[float] = None
    quiz_accuracy: Optional[float] = None  # correct / attempted
    moment_dismissal_time_ms: Optional[float] = None
    focus_change_count: int = 0  # times the tab was hidden

    def to_dict(self) -> dict:
        return {
            "timeOnPage": self.time_on_page,
            "isTabVisible": self.is_tab_visible,
            "timeSinceLastInteraction": self.time_since_last_interaction,
            "scrollActivityRate": self.scroll_activity_rate,
            "videoPlayRatio": self.video_play_ratio,
            "quizResponseTimeMs": self.quiz_response_time_ms,
            "quizAccuracy": self.quiz_accuracy,
            "momentDismissalTimeMs": self.moment_dismissal_time_ms,
            "focusChangeCount": self.focus_change_count,
        }


class BehavioralSignalProducer:
    """
    Owns the behavioral snapshot and its accumulators (page load time, last
    interaction, scroll window, playback totals, quiz attempts).
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        enabled: bool = True,
        on_signals_update: Optional[Callable[[BehavioralSignals], None]] = None,
    ):
        self._clock = clock or now_ms
        self.enabled = enabled
        self.on_signals_update = on_signals_update
        self.lock = threading.Lock()
        self._reset_accumulators(self._clock())
        self._signals = BehavioralSignals()

    def _reset_accumulators(self, now: float) -> None:
        self._page_load_time = now
        self._last_interaction = now
        self._scroll_count = 0
        self._scroll_window_start = now
        self._video_play_ms = 0.0
        self._video_total_ms = 0.0
        self._focus_changes = 0
        self._quiz_start: Optional[float] = None
        self._moment_start: Optional[float] = None
        self._quiz_correct = 0
        self._quiz_total = 0

    @property
    def signals(self) -> BehavioralSignals:
        with self.lock:
            return self._signals

    def _notify(self, snap: BehavioralSignals) -> None:
        if self.on_signals_update:
            try:
                self.on_signals_update(snap)
            except Exception as e:
                logger.warning("Behavioral signals callback failed: %s", e)

    def _play_ratio(self) -> float:
        if self._video_total_ms <= 0:
            return 0.0
        return min(1.0, self._video_play_ms / self._video_total_ms)

    def _scroll_rate(self, now: float) -> float:
        window = now - self._scroll_window_start
        return self._scroll_count / (window / 60000.0) if window > 0 else 0.0

    def _touch(self, now: float) -> BehavioralSignals:
        # Caller holds self.lock
        self._last_interaction = now
        self._signals = replace(self._signals, time_since_last_interaction=0.0)
        return self._signals

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    def on_video_play(self) -> None:
        """Playback started or resumed. Counts as an interaction."""
        with self.lock:
            snap = self._touch(self._clock())
        self._notify(snap)

    def on_video_time_update(self, is_playing: bool, delta_seconds: float) -> None:
        """Playback clock advanced by delta_seconds; only playing time counts as watched."""
        delta_ms = non_negative(delta_seconds) * 1000.0
        with self.lock:
            if is_playing:
                self._video_play_ms += delta_ms
            self._video_total_ms += delta_ms
            self._signals = replace(self._signals, video_play_ratio=self._play_ratio())
            snap = self._signals
        self._notify(snap)

    # ------------------------------------------------------------------
    # Quiz and teaching moments
    # ------------------------------------------------------------------
    def on_quiz_start(self) -> None:
        with self.lock:
            self._quiz_start = self._clock()

    def on_quiz_complete(self, is_correct: bool) -> None:
        """Record a quiz answer: response time since on_quiz_start and running accuracy."""
        now = self._clock()
        with self.lock:
            response_time = non_negative(now - self._quiz_start) if self._quiz_start is not None else None
            self._quiz_total += 1
            if is_correct:
                self._quiz_correct += 1
            accuracy = self._quiz_correct / self._quiz_total
            self._quiz_start = None
            self._touch(now)
            self._signals = replace(
                self._signals,
                quiz_response_time_ms=response_time,
                quiz_accuracy=accuracy,
            )
            snap = self._signals
        self._notify(snap)

    def on_moment_start(self) -> None:
        with self.lock:
            self._moment_start = self._clock()

    def on_moment_dismiss(self) -> None:
        """Teaching moment closed; dismissal time is measured from on_moment_start."""
        now = self._clock()
        with self.lock:
            dismiss = non_negative(now - self._moment_start) if self._moment_start is not None else None
            self._moment_start = None
            self._touch(now)
            self._signals = replace(self._signals, moment_dismissal_time_ms=dismiss)
            snap = self._signals
        self._notify(snap)

    # ------------------------------------------------------------------
    # Page activity
    # ------------------------------------------------------------------
    def record_interaction(self) -> None:
        """Click, key press, pointer move or touch."""
        with self.lock:
            snap = self._touch(self._clock())
        self._notify(snap)

    def record_scroll(self) -> None:
        """A scroll counts toward the scroll rate and as an interaction."""
        now = self._clock()
        with self.lock:
            self._scroll_count += 1
            self._touch(now)
            self._signals = replace(self._signals, scroll_activity_rate=self._scroll_rate(now))
            snap = self._signals
        self._notify(snap)

    def on_visibility_change(self, is_visible: bool) -> None:
        """Tab shown or hidden. Each hide increments focus_change_count."""
        with self.lock:
            if not is_visible:
                self._focus_changes += 1
            self._signals = replace(
                self._signals,
                is_tab_visible=bool(is_visible),
                focus_change_count=self._focus_changes,
            )
            snap = self._signals
        self._notify(snap)

    # ------------------------------------------------------------------
    # Periodic update
    # ------------------------------------------------------------------
    def refresh(self) -> BehavioralSignals:
        """
        Recompute time on page, idle time, scroll rate and play ratio.
        Does nothing while the producer is disabled.
        """
        if not self.enabled:
            return self.signals
        now = self._clock()
        with self.lock:
            time_on_page = float(math.floor(non_negative(now - self._page_load_time) / 1000.0))
            idle = non_negative(now - self._last_interaction)
            window = now - self._scroll_window_start
            scroll_rate = self._scroll_rate(now)
            if window > SCROLL_WINDOW_MS:
                self._scroll_count = 0
                self._scroll_window_start = now
            self._signals = replace(
                self._signals,
                time_on_page=time_on_page,
                time_since_last_interaction=idle,
                scroll_activity_rate=scroll_rate,
                video_play_ratio=self._play_ratio(),
            )
            return self._signals

    def reset_signals(self) -> None:
        """Fresh snapshot for a new lesson; page time restarts now."""
        with self.lock:
            self._reset_accumulators(self._clock())
            self._signals = BehavioralSignals()
