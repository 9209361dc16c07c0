"""
Vision Signal Producer.

A capability gate around optional camera-derived signals. It stays inert
until the learner has granted consent and the camera has been acquired.
Per-frame face results (from a FaceDetectorInterface backend run on the
camera, or posted by an external pipeline) are folded into a VisionSignals
snapshot: gaze-on-screen ratio, blink rate, a coarse expression and a
distance estimate.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

import config
from services.consent_store import ConsentStore
from utils.face_detection_interface import EXPRESSIONS, FaceDetectionResult, FaceDetectorInterface
from utils.signal_math import Clock, clamp, finite_or, non_negative, now_ms
from utils.video_source_handler import VideoSourceHandler

logger = logging.getLogger(__name__)

# Expression heuristics
TIRED_BLINK_RATE = 30.0  # blinks/min
CONFUSED_HEAD_TILT_DEG = 15.0  # |roll|
# Face width / frame width at the nominal viewing distance (distance 1.0).
NOMINAL_FACE_WIDTH_RATIO = 0.25
# Pace of the optional camera -> analyzer loop.
FRAME_INTERVAL_SEC = 0.2


@dataclass(frozen=True)
class VisionSignals:
    """Immutable snapshot of camera-derived signals."""
    enabled: bool = False
    face_detected: bool = False
    gaze_direction: str = "unknown"
    gaze_on_video_ratio: float = 0.0
    expression: str = "unknown"
    is_looking_at_screen: bool = False
    blink_rate: float = 0.0  # blinks per minute
    distance_from_screen: float = 1.0  # 1.0 = nominal

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "faceDetected": self.face_detected,
            "gazeDirection": self.gaze_direction,
            "gazeOnVideoRatio": self.gaze_on_video_ratio,
            "expression": self.expression,
            "isLookingAtScreen": self.is_looking_at_screen,
            "blinkRate": self.blink_rate,
            "distanceFromScreen": self.distance_from_screen,
        }


def classify_expression(result: FaceDetectionResult, blink_rate: float) -> str:
    """Coarse expression from blink rate and head pose when the backend gives none."""
    if not result.face_detected:
        return "unknown"
    if result.expression in EXPRESSIONS:
        return result.expression
    if blink_rate > TIRED_BLINK_RATE:
        return "tired"
    roll = finite_or((result.head_pose or {}).get("roll"), 0.0)
    if result.is_looking_at_screen and abs(roll) > CONFUSED_HEAD_TILT_DEG:
        return "confused"
    if result.is_looking_at_screen:
        return "interested"
    return "neutral"


def estimate_distance(face_width_ratio: Optional[float]) -> float:
    """Relative distance from the face width; wider face = closer (< 1)."""
    ratio = finite_or(face_width_ratio, 0.0)
    if ratio <= 0:
        return 1.0
    return clamp(NOMINAL_FACE_WIDTH_RATIO / ratio, 0.1, 5.0)


class VisionSignalProducer:
    """
    Owns the vision snapshot, the consent flag and the camera handle.

    enable_vision() never raises: without consent it asks for it (callback)
    and returns False; camera failures land in `error`.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        consent_store: Optional[ConsentStore] = None,
        camera_factory: Optional[Callable[[], VideoSourceHandler]] = None,
        face_detector: Optional[FaceDetectorInterface] = None,
        on_consent_request: Optional[Callable[[], None]] = None,
        on_signals_update: Optional[Callable[[VisionSignals], None]] = None,
    ):
        self._clock = clock or now_ms
        self.consent_store = consent_store or ConsentStore()
        self.camera_factory = camera_factory or VideoSourceHandler
        self.face_detector = face_detector
        self.on_consent_request = on_consent_request
        self.on_signals_update = on_signals_update
        self.lock = threading.Lock()
        # Serializes camera acquisition and release
        self._camera_lock = threading.RLock()
        self._signals = VisionSignals()
        self._camera: Optional[VideoSourceHandler] = None
        self._has_consent = self.consent_store.load()
        self.is_loading = False
        self.error: Optional[str] = None
        self._frame_thread: Optional[threading.Thread] = None
        self._frame_loop_running = False
        self._reset_tracking(self._clock())

    def _reset_tracking(self, now: float) -> None:
        self._samples = 0
        self._on_screen_samples = 0
        self._blink_count = 0
        self._tracking_start = now

    @property
    def signals(self) -> VisionSignals:
        with self.lock:
            return self._signals

    @property
    def has_consent(self) -> bool:
        return self._has_consent

    @property
    def is_enabled(self) -> bool:
        with self.lock:
            return self._signals.enabled

    def _notify(self, snap: VisionSignals) -> None:
        if self.on_signals_update:
            try:
                self.on_signals_update(snap)
            except Exception as e:
                logger.warning("Vision signals callback failed: %s", e)

    # ------------------------------------------------------------------
    # Consent
    # ------------------------------------------------------------------
    def grant_consent(self) -> None:
        self._has_consent = True
        self.consent_store.save(True)

    def revoke_consent(self) -> None:
        """Withdraw consent and shut the camera off."""
        self._has_consent = False
        self.consent_store.save(False)
        self.disable_vision()

    # ------------------------------------------------------------------
    # Camera lifecycle
    # ------------------------------------------------------------------
    def enable_vision(self) -> bool:
        """
        Acquire the camera and start accepting face results.

        Returns:
            True when vision is active, False when consent is missing or the
            camera could not be acquired (see `error`).
        """
        if not self._has_consent:
            if self.on_consent_request:
                try:
                    self.on_consent_request()
                except Exception as e:
                    logger.warning("Consent request callback failed: %s", e)
            return False
        with self._camera_lock:
            if self.is_enabled:
                return True
            return self._acquire_camera()

    def _acquire_camera(self) -> bool:
        # Caller holds _camera_lock
        self.is_loading = True
        self.error = None
        camera = None
        try:
            camera = self.camera_factory()
            opened = camera.initialize_source(
                camera_index=config.CAMERA_INDEX,
                width=config.CAMERA_WIDTH,
                height=config.CAMERA_HEIGHT,
            )
            if not opened:
                self.error = getattr(camera, "last_error", None) or "Failed to access camera"
                camera.release()
                logger.warning("Vision disabled: %s", self.error)
                return False
        except Exception as e:
            self.error = str(e) or "Failed to access camera"
            logger.warning("Vision disabled: %s", self.error)
            if camera is not None:
                camera.release()
            return False
        finally:
            self.is_loading = False

        with self.lock:
            self._camera = camera
            self._reset_tracking(self._clock())
            self._signals = replace(VisionSignals(), enabled=True)
            snap = self._signals
        self._start_frame_loop()
        self._notify(snap)
        return True

    def disable_vision(self) -> None:
        """Release the camera and return to the default snapshot. Idempotent."""
        with self._camera_lock:
            self._stop_frame_loop()
            with self.lock:
                camera = self._camera
                self._camera = None
                self._signals = VisionSignals()
                self._reset_tracking(self._clock())
            if camera is not None:
                camera.release()

    def _start_frame_loop(self) -> None:
        if self.face_detector is None:
            return
        self._frame_loop_running = True
        self._frame_thread = threading.Thread(target=self._frame_loop, daemon=True)
        self._frame_thread.start()

    def _stop_frame_loop(self) -> None:
        self._frame_loop_running = False
        thread = self._frame_thread
        self._frame_thread = None
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _frame_loop(self) -> None:
        """Read camera frames and feed the analyzer's results into on_detection."""
        while self._frame_loop_running:
            camera = self._camera
            if camera is None:
                break
            try:
                ok, frame = camera.read_frame()
                if ok:
                    self.on_detection(self.face_detector.detect(frame))
            except Exception as e:
                logger.warning("Face analysis failed: %s", e)
            time.sleep(FRAME_INTERVAL_SEC)

    # ------------------------------------------------------------------
    # Per-frame intake
    # ------------------------------------------------------------------
    def on_detection(self, result: FaceDetectionResult) -> None:
        """Fold one face result into the snapshot. Ignored while vision is off."""
        now = self._clock()
        with self.lock:
            if not self._signals.enabled:
                return
            looking = bool(result.face_detected and result.is_looking_at_screen)
            self._samples += 1
            if looking:
                self._on_screen_samples += 1
            gaze_ratio = self._on_screen_samples / self._samples

            if result.blink_detected:
                self._blink_count += 1
            if result.blink_rate is not None:
                blink_rate = non_negative(result.blink_rate)
            else:
                elapsed_min = (now - self._tracking_start) / 60000.0
                blink_rate = self._blink_count / elapsed_min if elapsed_min > 0 else 0.0

            gaze = result.gaze_direction
            if gaze == "unknown" and result.face_detected:
                gaze = "on-screen" if result.is_looking_at_screen else "off-screen"

            self._signals = replace(
                self._signals,
                face_detected=bool(result.face_detected),
                gaze_direction=gaze,
                gaze_on_video_ratio=gaze_ratio,
                expression=classify_expression(result, blink_rate),
                is_looking_at_screen=looking,
                blink_rate=blink_rate,
                distance_from_screen=estimate_distance(result.face_width_ratio),
            )
            snap = self._signals
        self._notify(snap)

    def reset_signals(self) -> None:
        """Clear the running ratios; keeps `enabled` while the camera is active."""
        with self.lock:
            self._reset_tracking(self._clock())
            if self._camera is not None:
                self._signals = replace(VisionSignals(), enabled=True)
            else:
                self._signals = VisionSignals()

    def get_status(self) -> dict:
        return {
            "enabled": self.is_enabled,
            "consent": self._has_consent,
            "isLoading": self.is_loading,
            "error": self.error,
            "analyzer": self.face_detector.get_name() if self.face_detector else None,
        }
