"""
Engagement State Detector.

One learner session: wires the three signal producers (audio, behavioral,
vision), the Fusion Engine and the Intervention Detector together, owns the
current State Vector and runs the periodic scheduler.

Pipeline per tick: refresh producers' time-based fields → fuse the current
snapshots into a new State Vector → evaluate interventions (hysteresis +
cooldown) → notify sinks (intervention callback, event log, state-vector
callback).
"""

import logging
import threading
from dataclasses import dataclass, fields, replace
from typing import Callable, Optional

import config
from services.consent_store import ConsentStore
from services.engagement_event_log import append_event, clear_events
from utils.audio_signals import AudioSignalProducer
from utils.behavioral_signals import BehavioralSignalProducer
from utils.face_detection_interface import FaceDetectorInterface
from utils.fusion_engine import FusionEngine
from utils.intervention_detector import InterventionDetector, InterventionPhase, InterventionReason
from utils.signal_math import Clock, now_ms
from utils.state_vector import StateVector, build_summary
from utils.vision_signals import VisionSignalProducer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngagementConfig:
    """
    Session configuration. Immutable; use update() to get a changed copy.

    Raises ValueError on out-of-range values.
    """
    attention_threshold: float = 0.4
    attention_duration_ms: float = 4000.0
    vision_enabled: bool = False
    vision_consent_given: bool = False
    update_interval_ms: float = 1000.0
    on_intervention_triggered: Optional[Callable[[InterventionReason], None]] = None
    on_state_vector_update: Optional[Callable[[StateVector], None]] = None

    def __post_init__(self):
        if not 0.0 <= float(self.attention_threshold) <= 1.0:
            raise ValueError("attention_threshold must be between 0 and 1")
        if float(self.attention_duration_ms) <= 0:
            raise ValueError("attention_duration_ms must be positive")
        if float(self.update_interval_ms) <= 0:
            raise ValueError("update_interval_ms must be positive")
        for name in ("vision_enabled", "vision_consent_given"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be a boolean")

    @classmethod
    def from_env(cls, **overrides) -> "EngagementConfig":
        """Defaults from config.py (environment), with keyword overrides."""
        values = config.get_engagement_defaults()
        values.update(overrides)
        return cls(**values)

    def update(self, **changes) -> "EngagementConfig":
        """Validated copy with the given fields changed. Unknown fields raise ValueError."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown engagement setting(s): {', '.join(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "attentionThreshold": self.attention_threshold,
            "attentionDurationMs": self.attention_duration_ms,
            "visionEnabled": self.vision_enabled,
            "visionConsentGiven": self.vision_consent_given,
            "updateIntervalMs": self.update_interval_ms,
        }


class EngagementStateDetector:
    """
    Main engagement session class.

    Usage:
        detector = EngagementStateDetector(EngagementConfig(on_intervention_triggered=notify))
        detector.start_detection()          # scheduler thread: tick every update_interval_ms
        detector.audio.on_agent_speech_end()
        detector.behavioral.on_visibility_change(False)
        vector = detector.state_vector
        detector.stop_detection()

    Tests drive tick() directly with an injected clock instead of starting
    the scheduler.
    """

    def __init__(
        self,
        engagement_config: Optional[EngagementConfig] = None,
        clock: Optional[Clock] = None,
        consent_store: Optional[ConsentStore] = None,
        camera_factory: Optional[Callable] = None,
        face_detector: Optional[FaceDetectorInterface] = None,
        on_consent_request: Optional[Callable[[], None]] = None,
        language: Optional[str] = None,
    ):
        self._clock = clock or now_ms
        self.config = engagement_config or EngagementConfig.from_env()
        self.language = (language or config.get_transcript_language()).lower()

        self.audio = AudioSignalProducer(clock=self._clock, language=self.language)
        self.behavioral = BehavioralSignalProducer(clock=self._clock)
        self.vision = VisionSignalProducer(
            clock=self._clock,
            consent_store=consent_store,
            camera_factory=camera_factory,
            face_detector=face_detector,
            on_consent_request=on_consent_request,
        )
        self.fusion = FusionEngine()
        self.intervention_detector = InterventionDetector(
            attention_threshold=self.config.attention_threshold,
            attention_duration_ms=self.config.attention_duration_ms,
            cooldown_ms=config.INTERVENTION_COOLDOWN_MS,
            language=self.language,
        )

        if self.config.vision_consent_given and not self.vision.has_consent:
            self.vision.grant_consent()

        self._state_vector = StateVector.empty(self._clock())
        self._tick_count = 0

        # Threading and control
        self.detection_thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self.is_running = False
        self.lock = threading.Lock()

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------
    @property
    def state_vector(self) -> StateVector:
        with self.lock:
            return self._state_vector

    def get_current_state(self) -> StateVector:
        """Current State Vector (thread-safe)."""
        return self.state_vector

    @property
    def is_intervention_triggered(self) -> bool:
        """True from the tick an intervention fired until its cooldown ends."""
        with self.lock:
            return self.intervention_detector.is_intervention_triggered

    @property
    def phase(self) -> InterventionPhase:
        with self.lock:
            return self.intervention_detector.phase

    def get_summary(self) -> dict:
        """Percentages per dimension, contributing sources and vision flags."""
        return build_summary(self.state_vector, self.vision.is_enabled, self.vision.has_consent)

    def get_signals(self) -> dict:
        """Current producer snapshots (for debugging and dashboards)."""
        return {
            "audio": self.audio.signals.to_dict(),
            "behavioral": self.behavioral.signals.to_dict(),
            "vision": self.vision.signals.to_dict(),
            "visionStatus": self.vision.get_status(),
        }

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def _fuse(self, now: float) -> StateVector:
        return self.fusion.compute(self.audio.signals, self.behavioral.signals, self.vision.signals, now)

    def tick(self) -> StateVector:
        """
        One scheduler step: refresh producers, fuse, evaluate interventions.

        Returns:
            The new State Vector.
        """
        with self.lock:
            now = self._clock()
            self.audio.refresh()
            self.behavioral.refresh()
            vector = self._fuse(now)
            self._state_vector = vector
            reason = self.intervention_detector.evaluate(
                vector, self.audio.signals, self.behavioral.signals, now
            )
            self._tick_count += 1
            tick_count = self._tick_count

        if config.ENGAGEMENT_DIAGNOSTIC_LOGGING and tick_count % config.ENGAGEMENT_DIAGNOSTIC_LOG_INTERVAL == 0:
            logger.info("engagement_diagnostic %s", vector.to_dict())
        if reason is not None:
            self._dispatch_intervention(reason)
        self._notify_state_vector(vector)
        return vector

    def recalculate(self) -> StateVector:
        """Out-of-band fusion of the current snapshots. Does not evaluate interventions."""
        with self.lock:
            vector = self._fuse(self._clock())
            self._state_vector = vector
        self._notify_state_vector(vector)
        return vector

    def _dispatch_intervention(self, reason: InterventionReason) -> None:
        append_event("intervention", reason.to_dict(), reason.timestamp)
        logger.info("Intervention fired: %s (%s)", reason.type.value, reason.suggested_action.value)
        callback = self.config.on_intervention_triggered
        if callback:
            try:
                callback(reason)
            except Exception as e:
                logger.warning("Intervention callback failed: %s", e)

    def _notify_state_vector(self, vector: StateVector) -> None:
        callback = self.config.on_state_vector_update
        if callback:
            try:
                callback(vector)
            except Exception as e:
                logger.warning("State vector callback failed: %s", e)

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------
    def reset_all(self) -> None:
        """
        Start over for a new lesson: release any held camera stream and clear
        all producer and engine state. Idempotent.
        """
        self.audio.reset_signals()
        self.behavioral.reset_signals()
        self.vision.disable_vision()
        with self.lock:
            self.intervention_detector.reset()
            self._state_vector = StateVector.empty(self._clock())
            self._tick_count = 0
        clear_events()

    def set_language(self, language: str) -> str:
        """Switch transcript cues and intervention messages for the running session."""
        lang = (language or "").strip().lower()
        if lang not in config.VALID_TRANSCRIPT_LANGUAGES:
            raise ValueError("language must be 'pt' or 'en'")
        with self.lock:
            self.language = lang
            self.audio.language = lang
            self.intervention_detector.language = lang
        return lang

    def update_config(self, **changes) -> EngagementConfig:
        """
        Apply configuration changes (validated). Thresholds take effect on the
        next tick; toggling vision_enabled acquires or releases the camera.
        """
        with self.lock:
            new_config = self.config.update(**changes)
            previous = self.config
            self.config = new_config
            self.intervention_detector.attention_threshold = float(new_config.attention_threshold)
            self.intervention_detector.attention_duration_ms = float(new_config.attention_duration_ms)
        if new_config.vision_consent_given and not previous.vision_consent_given:
            self.vision.grant_consent()
        if new_config.vision_enabled and not previous.vision_enabled and self.is_running:
            self.vision.enable_vision()
        elif not new_config.vision_enabled and previous.vision_enabled:
            self.vision.disable_vision()
        return new_config

    def start_detection(self) -> bool:
        """
        Start the scheduler thread (and vision, when configured).

        Returns:
            True once the scheduler is running.
        """
        if self.is_running:
            self.stop_detection()

        if self.config.vision_enabled and not self.vision.enable_vision():
            print(f"Vision unavailable, continuing with audio and behavioral signals: {self.vision.error or 'consent required'}")

        print(f"Engagement detection started: update_interval_ms={self.config.update_interval_ms}, vision={self.vision.is_enabled}")

        # One stop event per loop; a replaced loop exits on its own event
        stop_event = threading.Event()
        self._stop_event = stop_event
        self.is_running = True
        self.detection_thread = threading.Thread(
            target=self._detection_loop,
            args=(stop_event,),
            daemon=True
        )
        self.detection_thread.start()
        return True

    def stop_detection(self) -> None:
        """Stop the scheduler and release the camera. Idempotent."""
        self.is_running = False
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None

        if self.detection_thread and self.detection_thread.is_alive() and self.detection_thread is not threading.current_thread():
            self.detection_thread.join(timeout=2.0)
        self.detection_thread = None

        self.vision.disable_vision()

    def _detection_loop(self, stop_event: threading.Event) -> None:
        """Scheduler loop running in a separate thread."""
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.warning("Engagement tick failed: %s", e)
            stop_event.wait(float(self.config.update_interval_ms) / 1000.0)
