"""
Flask routes for the learner engagement engine.

Handles engagement session start/stop/state/summary/reset, signal intake
from the playback surface, speech pipeline and camera pipeline, intervention
polling, and engagement configuration. JSON in and out, camelCase keys.
"""

from typing import Optional

from flask import Blueprint, Flask, jsonify, request

import config
from services.engagement_event_log import clear_events, get_and_mark_new_interventions
from utils.face_detection_interface import FaceDetectionResult


# Create a blueprint for better organization
api = Blueprint('api', __name__)

# Global engagement session (singleton).
# EngagementStateDetector is imported lazily in start_engagement_detection.
engagement_detector = None  # type: Optional["EngagementStateDetector"]

# camelCase body keys accepted by POST /engagement/start and PUT /config/engagement
_CONFIG_KEYS = {
    "attentionThreshold": "attention_threshold",
    "attentionDurationMs": "attention_duration_ms",
    "visionEnabled": "vision_enabled",
    "visionConsentGiven": "vision_consent_given",
    "updateIntervalMs": "update_interval_ms",
}


def register_routes(app: Flask) -> None:
    """Attach the API blueprint to the app."""
    app.register_blueprint(api)


def _bool_field(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _config_overrides(data: dict) -> dict:
    overrides = {_CONFIG_KEYS[k]: v for k, v in data.items() if k in _CONFIG_KEYS}
    for key in ("visionEnabled", "visionConsentGiven"):
        if key in data:
            _bool_field(data, key, False)
    return overrides


def _not_started():
    return jsonify({"error": "Engagement detection not started"}), 404


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ============================================================================
# Configuration Routes
# ============================================================================

@api.route("/config/engagement", methods=["GET", "PUT"])
def engagement_config():
    """
    GET: Environment settings plus the running session's configuration (if any).
    PUT: Update the session configuration and/or transcript language; a new
         language also applies to the running session.
         Body: {"attentionThreshold"?, "attentionDurationMs"?, "visionEnabled"?,
                "visionConsentGiven"?, "updateIntervalMs"?, "language"?}
    """
    if request.method == "GET":
        out = config.build_config_response()
        out["session"] = engagement_detector.config.to_dict() if engagement_detector else None
        return jsonify(out)
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400
    data = _json_body()
    try:
        if "language" in data:
            language = config.set_transcript_language(data.get("language"))
            if engagement_detector:
                engagement_detector.set_language(language)
        overrides = _config_overrides(data)
        session = None
        if overrides:
            if not engagement_detector:
                return _not_started()
            session = engagement_detector.update_config(**overrides).to_dict()
        elif engagement_detector:
            session = engagement_detector.config.to_dict()
        return jsonify({"session": session, "language": config.get_transcript_language()})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return jsonify({"error": "Failed to update engagement config", "details": str(e)}), 500


# ============================================================================
# Engagement Session Routes
# ============================================================================

@api.route("/engagement/start", methods=["POST"])
def start_engagement_detection():
    """
    Start an engagement session (scheduler + producers).

    Request Body (all optional):
        {"attentionThreshold": 0.4, "attentionDurationMs": 4000, "visionEnabled": false,
         "visionConsentGiven": false, "updateIntervalMs": 1000}

    Returns:
        JSON: {"success": true, "message": ..., "config": {...}, "visionEnabled": bool}
    """
    global engagement_detector
    # Lazy import: engagement_state_detector loads on first start
    from engagement_state_detector import EngagementConfig, EngagementStateDetector

    data = _json_body() if request.is_json else {}
    try:
        engagement_config = EngagementConfig.from_env(**_config_overrides(data))
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    try:
        if engagement_detector:
            engagement_detector.stop_detection()
        clear_events()

        engagement_detector = EngagementStateDetector(engagement_config)
        engagement_detector.start_detection()
        return jsonify({
            "success": True,
            "message": "Engagement detection started",
            "config": engagement_detector.config.to_dict(),
            "visionEnabled": engagement_detector.vision.is_enabled,
        })
    except Exception as e:
        return jsonify({
            "error": "Failed to start engagement detection",
            "details": str(e)
        }), 500


@api.route("/engagement/stop", methods=["POST"])
def stop_engagement_detection():
    """Stop the engagement session and release the camera."""
    global engagement_detector

    try:
        if engagement_detector:
            engagement_detector.stop_detection()
            engagement_detector = None
        clear_events()
        return jsonify({
            "success": True,
            "message": "Engagement detection stopped"
        })
    except Exception as e:
        return jsonify({
            "error": "Failed to stop engagement detection",
            "details": str(e)
        }), 500


@api.route("/engagement/state", methods=["GET"])
def get_engagement_state():
    """
    Current State Vector plus intervention status.

    Returns:
        JSON: {"stateVector": {...}, "isInterventionTriggered": bool, "phase": "idle" | ...}
    """
    if not engagement_detector:
        return _not_started()
    try:
        return jsonify({
            "stateVector": engagement_detector.state_vector.to_dict(),
            "isInterventionTriggered": engagement_detector.is_intervention_triggered,
            "phase": engagement_detector.phase.value,
        })
    except Exception as e:
        return jsonify({"error": "Failed to get engagement state", "details": str(e)}), 500


@api.route("/engagement/recalculate", methods=["POST"])
def recalculate_engagement_state():
    """Force an out-of-band fusion and return the new State Vector."""
    if not engagement_detector:
        return _not_started()
    try:
        return jsonify({"stateVector": engagement_detector.recalculate().to_dict()})
    except Exception as e:
        return jsonify({"error": "Failed to recalculate engagement state", "details": str(e)}), 500


@api.route("/engagement/summary", methods=["GET"])
def get_engagement_summary():
    """Human-readable percentages per dimension (debug/display only)."""
    if not engagement_detector:
        return _not_started()
    return jsonify(engagement_detector.get_summary())


@api.route("/engagement/signals", methods=["GET"])
def get_engagement_signals():
    """Raw producer snapshots and vision status."""
    if not engagement_detector:
        return _not_started()
    return jsonify(engagement_detector.get_signals())


@api.route("/engagement/reset", methods=["POST"])
def reset_engagement():
    """Reset every producer and the intervention state (new lesson)."""
    if not engagement_detector:
        return _not_started()
    try:
        engagement_detector.reset_all()
        return jsonify({"success": True, "stateVector": engagement_detector.state_vector.to_dict()})
    except Exception as e:
        return jsonify({"error": "Failed to reset engagement", "details": str(e)}), 500


@api.route("/engagement/interventions", methods=["GET"])
def get_interventions():
    """
    Interventions fired since the previous poll (each delivered once).

    Returns:
        JSON: {"interventions": [{"type", "message", "stateVector", "suggestedAction", "timestamp"}]}
    """
    events = get_and_mark_new_interventions()
    return jsonify({"interventions": [e["data"] for e in events]})


# ============================================================================
# Signal Intake Routes
# ============================================================================

def _audio_event(event: str, data: dict) -> None:
    audio = engagement_detector.audio
    if event == "agent-speech-end":
        audio.on_agent_speech_end()
    elif event == "user-speech-start":
        audio.on_user_speech_start()
    elif event == "voice":
        audio.on_voice_detected(float(data.get("energyLevel", 0.0)))
    elif event == "transcript":
        audio.analyze_transcript(str(data.get("text", "") or ""), str(data.get("role", "user")))
    else:
        raise KeyError(event)


def _behavioral_event(event: str, data: dict) -> None:
    behavioral = engagement_detector.behavioral
    if event == "video-play":
        behavioral.on_video_play()
    elif event == "video-time-update":
        behavioral.on_video_time_update(_bool_field(data, "isPlaying", False), float(data.get("deltaSeconds", 0.0)))
    elif event == "quiz-start":
        behavioral.on_quiz_start()
    elif event == "quiz-complete":
        behavioral.on_quiz_complete(_bool_field(data, "isCorrect", False))
    elif event == "moment-start":
        behavioral.on_moment_start()
    elif event == "moment-dismiss":
        behavioral.on_moment_dismiss()
    elif event == "interaction":
        behavioral.record_interaction()
    elif event == "scroll":
        behavioral.record_scroll()
    elif event == "visibility":
        behavioral.on_visibility_change(_bool_field(data, "isVisible", True))
    else:
        raise KeyError(event)


@api.route("/engagement/audio/<event>", methods=["POST"])
def audio_intake(event):
    """
    Speech pipeline events: agent-speech-end, user-speech-start,
    voice {"energyLevel"}, transcript {"text", "role": "user" | "assistant"}.
    """
    if not engagement_detector:
        return _not_started()
    try:
        _audio_event(event, _json_body())
        return "", 204
    except KeyError:
        return jsonify({"error": f"Unknown audio event: {event}"}), 400
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return jsonify({"error": "Failed to process audio event", "details": str(e)}), 500


@api.route("/engagement/behavioral/<event>", methods=["POST"])
def behavioral_intake(event):
    """
    Playback surface / page events: video-play, video-time-update {"isPlaying", "deltaSeconds"},
    quiz-start, quiz-complete {"isCorrect"}, moment-start, moment-dismiss, interaction,
    scroll, visibility {"isVisible"}.
    """
    if not engagement_detector:
        return _not_started()
    try:
        _behavioral_event(event, _json_body())
        return "", 204
    except KeyError:
        return jsonify({"error": f"Unknown behavioral event: {event}"}), 400
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return jsonify({"error": "Failed to process behavioral event", "details": str(e)}), 500


@api.route("/engagement/vision/consent", methods=["POST", "DELETE"])
def vision_consent():
    """POST grants camera consent (persisted); DELETE revokes it and turns vision off."""
    if not engagement_detector:
        return _not_started()
    try:
        if request.method == "POST":
            engagement_detector.vision.grant_consent()
        else:
            engagement_detector.vision.revoke_consent()
        return jsonify(engagement_detector.vision.get_status())
    except Exception as e:
        return jsonify({"error": "Failed to update vision consent", "details": str(e)}), 500


@api.route("/engagement/vision/enable", methods=["POST"])
def enable_vision():
    """
    Acquire the camera. Returns 200 with "enabled": false and an "error" or
    "consentRequired" flag when vision could not be turned on.
    """
    if not engagement_detector:
        return _not_started()
    try:
        vision = engagement_detector.vision
        enabled = vision.enable_vision()
        out = vision.get_status()
        out["consentRequired"] = not vision.has_consent
        out["enabled"] = enabled
        return jsonify(out)
    except Exception as e:
        return jsonify({"error": "Failed to enable vision", "details": str(e)}), 500


@api.route("/engagement/vision/disable", methods=["POST"])
def disable_vision():
    """Release the camera and reset vision signals."""
    if not engagement_detector:
        return _not_started()
    engagement_detector.vision.disable_vision()
    return jsonify(engagement_detector.vision.get_status())


@api.route("/engagement/vision/detection", methods=["POST"])
def vision_detection():
    """
    Per-frame face result from an external camera pipeline.
    Body: {"faceDetected", "isLookingAtScreen", "gazeDirection"?, "blinkRate"?, "blinkDetected"?,
           "headPose"? {"pitch","yaw","roll"}, "faceWidthRatio"?, "expression"?}
    """
    if not engagement_detector:
        return _not_started()
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400
    try:
        result = FaceDetectionResult.from_dict(_json_body())
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    try:
        engagement_detector.vision.on_detection(result)
        return "", 204
    except Exception as e:
        return jsonify({"error": "Failed to process detection", "details": str(e)}), 500
