"""
API endpoint tests.

Uses Flask test client. Does not require a running server.
The consent file is redirected to a temp dir; vision stays off unless consented.
"""

import json
import sys
import os

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import shutil
import tempfile
import unittest
from unittest.mock import patch


def get_app_client():
    """Create Flask app and test client. Lazy to avoid import-time side effects."""
    from app import app
    app.config["TESTING"] = True
    return app.test_client()


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        import config
        self.tmpdir = tempfile.mkdtemp()
        self.consent_patch = patch.object(config, "VISION_CONSENT_PATH", os.path.join(self.tmpdir, "consent.json"))
        self.consent_patch.start()
        self.client = get_app_client()

    def tearDown(self):
        self.client.post("/engagement/stop")
        self.consent_patch.stop()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def start(self, **body):
        r = self.client.post("/engagement/start", data=json.dumps(body), content_type="application/json")
        self.assertEqual(r.status_code, 200, r.get_data(as_text=True))
        return r


class TestConfigEndpoints(ApiTestCase):
    """Test config-related endpoints."""

    def tearDown(self):
        import config
        config._transcript_language_preference = None
        super().tearDown()

    def test_get_engagement_config(self):
        """GET /config/engagement should return JSON."""
        r = self.client.get("/config/engagement")
        self.assertEqual(r.status_code, 200)
        self.assertIn("application/json", r.content_type)
        data = r.get_json()
        self.assertIn("engagement", data)
        self.assertIsNone(data["session"])

    def test_put_language(self):
        r = self.client.put("/config/engagement", data=json.dumps({"language": "en"}), content_type="application/json")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json()["language"], "en")

    def test_put_invalid_language_returns_400(self):
        r = self.client.put("/config/engagement", data=json.dumps({"language": "xx"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_put_requires_json(self):
        r = self.client.put("/config/engagement", data="language=en")
        self.assertEqual(r.status_code, 400)

    def test_put_session_setting_without_session_returns_404(self):
        r = self.client.put("/config/engagement", data=json.dumps({"attentionThreshold": 0.5}), content_type="application/json")
        self.assertEqual(r.status_code, 404)

    def test_put_session_setting(self):
        self.start()
        r = self.client.put("/config/engagement", data=json.dumps({"attentionThreshold": 0.5}), content_type="application/json")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json()["session"]["attentionThreshold"], 0.5)

    def test_put_invalid_session_setting_returns_400(self):
        self.start()
        r = self.client.put("/config/engagement", data=json.dumps({"attentionThreshold": 3}), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_put_language_applies_to_running_session(self):
        import routes
        self.start()
        r = self.client.put("/config/engagement", data=json.dumps({"language": "en"}), content_type="application/json")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(routes.engagement_detector.audio.language, "en")
        self.assertEqual(routes.engagement_detector.intervention_detector.language, "en")

    def test_put_non_boolean_vision_flag_returns_400(self):
        self.start()
        r = self.client.put("/config/engagement", data=json.dumps({"visionEnabled": "false"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)


class TestEngagementSessionEndpoints(ApiTestCase):
    """Test session lifecycle endpoints."""

    def test_state_without_session_returns_404(self):
        self.client.post("/engagement/stop")
        r = self.client.get("/engagement/state")
        self.assertEqual(r.status_code, 404)
        self.assertIn("error", r.get_json())

    def test_start_and_get_state(self):
        r = self.start(attentionThreshold=0.3)
        data = r.get_json()
        self.assertTrue(data["success"])
        self.assertEqual(data["config"]["attentionThreshold"], 0.3)
        self.assertFalse(data["visionEnabled"])
        r = self.client.get("/engagement/state")
        self.assertEqual(r.status_code, 200)
        state = r.get_json()
        self.assertIn("stateVector", state)
        self.assertIn("phase", state)
        self.assertIn("confidence", state["stateVector"])

    def test_start_with_invalid_config_returns_400(self):
        r = self.client.post("/engagement/start", data=json.dumps({"attentionThreshold": 2}), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_start_with_string_vision_flag_returns_400(self):
        r = self.client.post("/engagement/start", data=json.dumps({"visionEnabled": "yes"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_stop_is_idempotent(self):
        self.start()
        self.assertEqual(self.client.post("/engagement/stop").status_code, 200)
        self.assertEqual(self.client.post("/engagement/stop").status_code, 200)

    def test_summary_signals_reset_recalculate(self):
        self.start()
        r = self.client.get("/engagement/summary")
        self.assertEqual(r.status_code, 200)
        self.assertIn("sources", r.get_json())
        r = self.client.get("/engagement/signals")
        self.assertEqual(r.status_code, 200)
        self.assertIn("behavioral", r.get_json())
        r = self.client.post("/engagement/reset")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.get_json()["success"])
        r = self.client.post("/engagement/recalculate")
        self.assertEqual(r.status_code, 200)
        self.assertIn("stateVector", r.get_json())

    def test_interventions_returns_list(self):
        r = self.client.get("/engagement/interventions")
        self.assertEqual(r.status_code, 200)
        self.assertIsInstance(r.get_json()["interventions"], list)


class TestSignalIntakeEndpoints(ApiTestCase):
    """Test audio, behavioral and vision intake."""

    def test_intake_without_session_returns_404(self):
        r = self.client.post("/engagement/behavioral/scroll")
        self.assertEqual(r.status_code, 404)

    def test_behavioral_visibility(self):
        self.start()
        r = self.client.post("/engagement/behavioral/visibility", data=json.dumps({"isVisible": False}), content_type="application/json")
        self.assertEqual(r.status_code, 204)
        signals = self.client.get("/engagement/signals").get_json()
        self.assertFalse(signals["behavioral"]["isTabVisible"])
        self.assertEqual(signals["behavioral"]["focusChangeCount"], 1)

    def test_behavioral_string_boolean_returns_400(self):
        self.start()
        r = self.client.post("/engagement/behavioral/visibility", data=json.dumps({"isVisible": "false"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)
        r = self.client.post("/engagement/behavioral/quiz-complete", data=json.dumps({"isCorrect": "true"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)
        signals = self.client.get("/engagement/signals").get_json()
        self.assertTrue(signals["behavioral"]["isTabVisible"])
        self.assertIsNone(signals["behavioral"]["quizAccuracy"])

    def test_behavioral_quiz(self):
        self.start()
        self.assertEqual(self.client.post("/engagement/behavioral/quiz-start").status_code, 204)
        r = self.client.post("/engagement/behavioral/quiz-complete", data=json.dumps({"isCorrect": True}), content_type="application/json")
        self.assertEqual(r.status_code, 204)
        signals = self.client.get("/engagement/signals").get_json()
        self.assertEqual(signals["behavioral"]["quizAccuracy"], 1.0)

    def test_unknown_behavioral_event_returns_400(self):
        self.start()
        r = self.client.post("/engagement/behavioral/teleport")
        self.assertEqual(r.status_code, 400)

    def test_audio_transcript(self):
        self.start()
        body = {"text": "não entendi", "role": "user"}
        r = self.client.post("/engagement/audio/transcript", data=json.dumps(body), content_type="application/json")
        self.assertEqual(r.status_code, 204)
        signals = self.client.get("/engagement/signals").get_json()
        self.assertEqual(signals["audio"]["confusionIndicatorCount"], 1)

    def test_audio_transcript_bad_role_returns_400(self):
        self.start()
        body = {"text": "hello", "role": "narrator"}
        r = self.client.post("/engagement/audio/transcript", data=json.dumps(body), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_audio_voice_bad_energy_returns_400(self):
        self.start()
        r = self.client.post("/engagement/audio/voice", data=json.dumps({"energyLevel": "loud"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_vision_enable_without_consent(self):
        self.start()
        r = self.client.post("/engagement/vision/enable")
        self.assertEqual(r.status_code, 200)
        data = r.get_json()
        self.assertFalse(data["enabled"])
        self.assertTrue(data["consentRequired"])

    def test_vision_consent_grant_and_revoke(self):
        self.start()
        r = self.client.post("/engagement/vision/consent")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.get_json()["consent"])
        r = self.client.delete("/engagement/vision/consent")
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.get_json()["consent"])

    def test_vision_detection_bad_gaze_returns_400(self):
        self.start()
        body = {"faceDetected": True, "gazeDirection": "sideways"}
        r = self.client.post("/engagement/vision/detection", data=json.dumps(body), content_type="application/json")
        self.assertEqual(r.status_code, 400)

    def test_vision_detection_ignored_while_disabled(self):
        self.start()
        body = {"faceDetected": True, "isLookingAtScreen": True}
        r = self.client.post("/engagement/vision/detection", data=json.dumps(body), content_type="application/json")
        self.assertEqual(r.status_code, 204)
        signals = self.client.get("/engagement/signals").get_json()
        self.assertFalse(signals["vision"]["faceDetected"])

    def test_vision_disable(self):
        self.start()
        r = self.client.post("/engagement/vision/disable")
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.get_json()["enabled"])


if __name__ == "__main__":
    unittest.main()
