"""
Persisted camera consent.

The learner's vision consent survives restarts in a small JSON file
(config.VISION_CONSENT_PATH). Reads never raise: a missing or unreadable file
means no consent.

JSON format:
  {"visionConsent": true}
"""

import json
import logging
import os
import threading
from typing import Optional

import config

logger = logging.getLogger(__name__)


class ConsentStore:
    """File-backed boolean consent flag."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or config.VISION_CONSENT_PATH
        self._lock = threading.Lock()

    def load(self) -> bool:
        """True only when the file exists and records consent."""
        with self._lock:
            if not self.path or not os.path.isfile(self.path):
                return False
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Could not read consent file %s: %s", self.path, e)
                return False
            return isinstance(data, dict) and data.get("visionConsent") is True

    def save(self, granted: bool) -> None:
        """Persist consent; revoking removes the file."""
        with self._lock:
            if not granted:
                if os.path.isfile(self.path):
                    os.remove(self.path)
                return
            folder = os.path.dirname(self.path)
            if folder:
                os.makedirs(folder, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump({"visionConsent": True}, f)
