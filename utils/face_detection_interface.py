"""
Face Detection Interface Module

Defines the per-frame result the vision producer consumes and an abstract
interface for face analyzers, so any landmark/gaze backend can feed the
engagement engine. The engine itself does no face analysis; a deployment
plugs in a FaceDetectorInterface implementation or posts results directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

GAZE_DIRECTIONS = ("on-screen", "off-screen", "unknown")
EXPRESSIONS = ("neutral", "confused", "interested", "frustrated", "tired", "unknown")


@dataclass
class FaceDetectionResult:
    """
    Standardized per-frame face analysis result.

    Backends fill what they can; everything except face_detected is optional.
    """
    face_detected: bool = False
    is_looking_at_screen: bool = False
    gaze_direction: str = "unknown"  # "on-screen" | "off-screen" | "unknown"
    blink_rate: Optional[float] = None  # blinks per minute, if the backend tracks it
    blink_detected: bool = False  # a blink completed in this frame
    head_pose: Optional[Dict[str, float]] = None  # pitch, yaw, roll in degrees
    face_width_ratio: Optional[float] = None  # face box width / frame width
    expression: Optional[str] = None  # backend-classified expression, if any
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FaceDetectionResult":
        """Build from a camelCase JSON body (POST /engagement/vision/detection)."""
        gaze = data.get("gazeDirection") or "unknown"
        if gaze not in GAZE_DIRECTIONS:
            raise ValueError(f"gazeDirection must be one of {', '.join(GAZE_DIRECTIONS)}")
        expression = data.get("expression")
        if expression is not None and expression not in EXPRESSIONS:
            raise ValueError(f"expression must be one of {', '.join(EXPRESSIONS)}")
        head_pose = data.get("headPose")
        return cls(
            face_detected=bool(data.get("faceDetected", False)),
            is_looking_at_screen=bool(data.get("isLookingAtScreen", False)),
            gaze_direction=gaze,
            blink_rate=data.get("blinkRate"),
            blink_detected=bool(data.get("blinkDetected", False)),
            head_pose=dict(head_pose) if isinstance(head_pose, dict) else None,
            face_width_ratio=data.get("faceWidthRatio"),
            expression=expression,
            confidence=float(data.get("confidence", 1.0)),
        )


class FaceDetectorInterface(ABC):
    """
    Abstract interface for face analyzers that turn a camera frame into a
    FaceDetectionResult.
    """

    @abstractmethod
    def detect(self, image: np.ndarray) -> FaceDetectionResult:
        """
        Analyze one frame.

        Args:
            image: BGR image array (OpenCV format)

        Returns:
            FaceDetectionResult for the most prominent face (face_detected False if none)
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """True if the analyzer can be used."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Short backend name for logs."""
        pass

    def close(self) -> None:
        """
        Clean up resources. Override if needed.

        Default implementation does nothing.
        """
        pass
