"""
=============================================================================
CONFIGURATION FOR THE LEARNER ENGAGEMENT ENGINE (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds ALL configurable settings for the engine in one place. Other
modules read from here. Values come from the environment (your .env file or
system variables) so you can tune thresholds per deployment without touching
code.

MAIN GROUPS OF SETTINGS:
------------------------
  1. Engagement      - Low-attention threshold, how long attention must stay low,
                       and how often the State Vector is recomputed.
  2. Vision          - Optional camera-based gaze signals (consent file, camera index).
  3. Transcript      - Which keyword set is used to classify learner utterances.
  4. Diagnostics     - Optional periodic log line with the fused State Vector.
  5. Server          - Host, port, and debug mode for the web server.

HOW VALUES ARE CHOSEN:
---------------------
  - Environment variables (e.g. ATTENTION_THRESHOLD) override everything.
  - If an env var is not set, we use the documented default.
=============================================================================
"""

import os
import sys
from typing import Optional


# ============================================================================
# ENGAGEMENT (fusion and intervention timing)
# ============================================================================
# Attention below this value (0-1) starts the low-attention timer.
ATTENTION_THRESHOLD: float = float(os.getenv("ATTENTION_THRESHOLD", "0.4"))
# Attention must stay below the threshold this long (ms) before a low_attention intervention.
ATTENTION_DURATION_MS: float = float(os.getenv("ATTENTION_DURATION_MS", "4000"))
# How often the State Vector is recomputed (ms).
UPDATE_INTERVAL_MS: float = float(os.getenv("UPDATE_INTERVAL_MS", "1000"))
# Fixed quiet period after any intervention (ms). All interventions are suppressed meanwhile.
INTERVENTION_COOLDOWN_MS: float = 10000.0
# Max fired interventions / engagement events kept in memory for polling.
ENGAGEMENT_EVENT_LOG_SIZE: int = max(1, int(os.getenv("ENGAGEMENT_EVENT_LOG_SIZE", "100")))

# ============================================================================
# VISION (optional camera signals; inert until the learner consents)
# ============================================================================
# Start sessions with vision requested (still requires consent and a working camera).
VISION_ENABLED: bool = os.getenv("VISION_ENABLED", "false").lower() == "true"
# Where the learner's camera consent flag is persisted between sessions.
VISION_CONSENT_PATH: str = os.getenv("VISION_CONSENT_PATH", "data/vision_consent.json")
# Camera device index and capture size used when vision is enabled.
CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
CAMERA_WIDTH: int = int(os.getenv("CAMERA_WIDTH", "640"))
CAMERA_HEIGHT: int = int(os.getenv("CAMERA_HEIGHT", "480"))

# ============================================================================
# TRANSCRIPT (keyword cues in learner speech)
# ============================================================================
# "pt" (default) or "en". Selects the confusion / affirmative / question / hesitation lists.
TRANSCRIPT_LANGUAGE: str = (os.getenv("TRANSCRIPT_LANGUAGE") or "pt").strip().lower()
VALID_TRANSCRIPT_LANGUAGES = ("pt", "en")

# ============================================================================
# Engagement diagnostic logging (off by default)
# ============================================================================
# When True, log the fused State Vector every N ticks to aid threshold tuning.
ENGAGEMENT_DIAGNOSTIC_LOGGING: bool = os.getenv("ENGAGEMENT_DIAGNOSTIC_LOGGING", "false").lower() == "true"
# Log every N ticks (e.g. 10 = every 10 s at the default interval). Ignored when logging is disabled.
ENGAGEMENT_DIAGNOSTIC_LOG_INTERVAL: int = max(1, int(os.getenv("ENGAGEMENT_DIAGNOSTIC_LOG_INTERVAL", "10")))

# ============================================================================
# Application Configuration
# ============================================================================
FLASK_PORT: int = int(os.getenv("FLASK_PORT", "5000"))
FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "true").lower() == "true"
FLASK_HOST: str = os.getenv("FLASK_HOST", "0.0.0.0")

# ============================================================================
# Helper Functions
# ============================================================================

def warn_invalid_config() -> None:
    """
    Print warnings for out-of-range settings and fall back to defaults.
    Call from app startup (e.g. app.py) to help operators. Does not raise.
    """
    global ATTENTION_THRESHOLD, ATTENTION_DURATION_MS, UPDATE_INTERVAL_MS, TRANSCRIPT_LANGUAGE
    problems = []
    if not 0.0 <= ATTENTION_THRESHOLD <= 1.0:
        problems.append(f"ATTENTION_THRESHOLD={ATTENTION_THRESHOLD} (expected 0-1, using 0.4)")
        ATTENTION_THRESHOLD = 0.4
    if ATTENTION_DURATION_MS <= 0:
        problems.append(f"ATTENTION_DURATION_MS={ATTENTION_DURATION_MS} (expected > 0, using 4000)")
        ATTENTION_DURATION_MS = 4000.0
    if UPDATE_INTERVAL_MS <= 0:
        problems.append(f"UPDATE_INTERVAL_MS={UPDATE_INTERVAL_MS} (expected > 0, using 1000)")
        UPDATE_INTERVAL_MS = 1000.0
    if TRANSCRIPT_LANGUAGE not in VALID_TRANSCRIPT_LANGUAGES:
        problems.append(f"TRANSCRIPT_LANGUAGE={TRANSCRIPT_LANGUAGE!r} (expected 'pt' or 'en', using 'pt')")
        TRANSCRIPT_LANGUAGE = "pt"
    if problems:
        print("Config warning: invalid values were replaced by defaults:", "; ".join(problems), file=sys.stderr)


def get_engagement_defaults() -> dict:
    """Keyword arguments for EngagementConfig built from the environment."""
    return {
        "attention_threshold": ATTENTION_THRESHOLD,
        "attention_duration_ms": ATTENTION_DURATION_MS,
        "vision_enabled": VISION_ENABLED,
        "update_interval_ms": UPDATE_INTERVAL_MS,
    }


_transcript_language_preference: Optional[str] = None


def get_transcript_language() -> str:
    """Return the active transcript language (runtime preference or config default)."""
    return (_transcript_language_preference or TRANSCRIPT_LANGUAGE or "pt").lower()


def set_transcript_language(language: str) -> str:
    """
    Set the transcript keyword language. Valid: 'pt', 'en'.
    Returns the validated language that was set.
    """
    global _transcript_language_preference
    lang = (language or "").strip().lower()
    if lang not in VALID_TRANSCRIPT_LANGUAGES:
        raise ValueError("language must be 'pt' or 'en'")
    _transcript_language_preference = lang
    return _transcript_language_preference


def build_config_response() -> dict:
    """
    Build the configuration response for GET /config/engagement.
    Aggregates environment settings into a single dictionary.
    """
    return {
        "engagement": {
            "attentionThreshold": ATTENTION_THRESHOLD,
            "attentionDurationMs": ATTENTION_DURATION_MS,
            "updateIntervalMs": UPDATE_INTERVAL_MS,
            "interventionCooldownMs": INTERVENTION_COOLDOWN_MS,
        },
        "vision": {
            "visionEnabled": VISION_ENABLED,
            "cameraIndex": CAMERA_INDEX,
            "cameraWidth": CAMERA_WIDTH,
            "cameraHeight": CAMERA_HEIGHT,
        },
        "transcript": {
            "language": get_transcript_language(),
        },
        "diagnostics": {
            "enabled": ENGAGEMENT_DIAGNOSTIC_LOGGING,
            "interval": ENGAGEMENT_DIAGNOSTIC_LOG_INTERVAL,
        },
    }
