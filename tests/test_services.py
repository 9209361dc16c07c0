"""
Service layer tests.

Tests the consent store, the engagement event log and config helpers.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import shutil
import tempfile
import unittest
from unittest.mock import patch


class TestConsentStore(unittest.TestCase):
    """Test persisted camera consent."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "nested", "consent.json")

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_missing_file_means_no_consent(self):
        from services.consent_store import ConsentStore
        self.assertFalse(ConsentStore(self.path).load())

    def test_save_and_load(self):
        """save(True) should create the folder and persist consent."""
        from services.consent_store import ConsentStore
        store = ConsentStore(self.path)
        store.save(True)
        self.assertTrue(os.path.isfile(self.path))
        self.assertTrue(ConsentStore(self.path).load())

    def test_revoke_removes_file(self):
        from services.consent_store import ConsentStore
        store = ConsentStore(self.path)
        store.save(True)
        store.save(False)
        self.assertFalse(os.path.exists(self.path))
        self.assertFalse(store.load())

    def test_corrupt_file_means_no_consent(self):
        from services.consent_store import ConsentStore
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertLogs("services.consent_store", level="WARNING"):
            self.assertFalse(ConsentStore(self.path).load())

    def test_default_path_from_config(self):
        import config
        from services.consent_store import ConsentStore
        with patch.object(config, "VISION_CONSENT_PATH", self.path):
            self.assertEqual(ConsentStore().path, self.path)


class TestEngagementEventLog(unittest.TestCase):
    """Test the in-memory intervention log."""

    def setUp(self):
        from services.engagement_event_log import clear_events
        clear_events()

    def test_append_and_get(self):
        from services.engagement_event_log import append_event, get_recent_events
        append_event("intervention", {"type": "fatigue"}, 1.0)
        append_event("behavioral", {"isTabVisible": False}, 2.0)
        self.assertEqual(len(get_recent_events()), 2)
        only = get_recent_events("intervention")
        self.assertEqual(len(only), 1)
        self.assertEqual(only[0]["data"]["type"], "fatigue")

    def test_unknown_type_raises(self):
        from services.engagement_event_log import append_event
        with self.assertRaises(ValueError):
            append_event("telemetry", {}, 0.0)

    def test_new_interventions_delivered_once(self):
        from services.engagement_event_log import append_event, get_and_mark_new_interventions
        append_event("intervention", {"type": "tab_switch"}, 1.0)
        self.assertEqual(len(get_and_mark_new_interventions()), 1)
        self.assertEqual(get_and_mark_new_interventions(), [])
        append_event("intervention", {"type": "fatigue"}, 2.0)
        fresh = get_and_mark_new_interventions()
        self.assertEqual([e["data"]["type"] for e in fresh], ["fatigue"])

    def test_clear_events(self):
        from services.engagement_event_log import append_event, clear_events, get_and_mark_new_interventions, get_recent_events
        append_event("intervention", {"type": "fatigue"}, 1.0)
        clear_events()
        self.assertEqual(get_recent_events(), [])
        self.assertEqual(get_and_mark_new_interventions(), [])


class TestConfigHelpers(unittest.TestCase):
    """Test config.py helpers."""

    def tearDown(self):
        import config
        config._transcript_language_preference = None

    def test_set_transcript_language(self):
        import config
        self.assertEqual(config.set_transcript_language(" EN "), "en")
        self.assertEqual(config.get_transcript_language(), "en")

    def test_invalid_language_raises(self):
        import config
        with self.assertRaises(ValueError):
            config.set_transcript_language("fr")

    def test_build_config_response(self):
        import config
        out = config.build_config_response()
        self.assertEqual(out["engagement"]["interventionCooldownMs"], 10000.0)
        self.assertIn("language", out["transcript"])

    def test_engagement_defaults_build_valid_config(self):
        from engagement_state_detector import EngagementConfig
        c = EngagementConfig.from_env(attention_threshold=0.3)
        self.assertEqual(c.attention_threshold, 0.3)


if __name__ == "__main__":
    unittest.main()
