"""
Utilities package for the Learner Engagement Engine.

This package contains the signal producers (audio, behavioral, vision), the
Fusion Engine, the Intervention Detector, and the camera/face-detection seams.
"""

from .video_source_handler import VideoSourceHandler
from .face_detection_interface import FaceDetectorInterface, FaceDetectionResult
from .state_vector import StateVector, DimensionConfidence, SignalSource
from .audio_signals import AudioSignalProducer, AudioSignals
from .behavioral_signals import BehavioralSignalProducer, BehavioralSignals
from .vision_signals import VisionSignalProducer, VisionSignals
from .fusion_engine import FusionEngine
from .intervention_detector import InterventionDetector, InterventionReason, InterventionType

__all__ = [
    'VideoSourceHandler',
    'FaceDetectorInterface',
    'FaceDetectionResult',
    'StateVector',
    'DimensionConfidence',
    'SignalSource',
    'AudioSignalProducer',
    'AudioSignals',
    'BehavioralSignalProducer',
    'BehavioralSignals',
    'VisionSignalProducer',
    'VisionSignals',
    'FusionEngine',
    'InterventionDetector',
    'InterventionReason',
    'InterventionType',
]
