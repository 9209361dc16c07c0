"""
Video Source Handler Module

Acquires and releases the learner's webcam with OpenCV. Used by the vision
producer when the learner turns camera signals on; frames are handed to an
optional face analyzer. Acquisition failures are reported, never raised.
"""

import sys
from typing import Optional, Tuple

import cv2
import numpy as np


class VideoSourceHandler:
    """
    Webcam acquisition.

    Usage:
        handler = VideoSourceHandler()
        if handler.initialize_source(camera_index=0):
            ok, frame = handler.read_frame()
        handler.release()
    """

    def __init__(self):
        self.cap: Optional[cv2.VideoCapture] = None
        self.camera_index: Optional[int] = None
        self.last_error: Optional[str] = None

    def initialize_source(self, camera_index: int = 0, width: int = 640, height: int = 480) -> bool:
        """
        Open the webcam at camera_index (falling back across capture APIs).

        Returns:
            True if the camera opened and produced a frame, False otherwise
            (see last_error).
        """
        self.release()
        self.camera_index = camera_index
        self.last_error = None
        apis = [cv2.CAP_DSHOW, cv2.CAP_MSMF, cv2.CAP_ANY] if sys.platform == "win32" else [cv2.CAP_ANY]
        try:
            for api in apis:
                cap = cv2.VideoCapture(camera_index, api)
                if cap.isOpened() and cap.read()[0]:
                    self.cap = cap
                    break
                cap.release()
            if self.cap is None:
                self.last_error = f"Camera {camera_index} is unavailable or access was denied"
                return False
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            return True
        except Exception as e:
            self.last_error = str(e) or "Failed to access camera"
            print(f"Error initializing camera: {e}")
            self.release()
            return False

    def is_opened(self) -> bool:
        return bool(self.cap is not None and self.cap.isOpened())

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """
        Read a frame from the camera.

        Returns:
            (success, BGR frame or None)
        """
        if not self.is_opened():
            return False, None
        ret, frame = self.cap.read()
        if not ret or frame is None:
            return False, None
        return True, frame

    def release(self) -> None:
        """Release the camera. Safe to call repeatedly."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def __del__(self):
        """Cleanup on deletion."""
        self.release()
