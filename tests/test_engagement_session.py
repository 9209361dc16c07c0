"""
Engagement session tests.

EngagementStateDetector driven tick by tick with a fake clock: end-to-end
fusion and intervention, reset, callbacks and configuration updates.
"""

import os
import shutil
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from unittest.mock import MagicMock


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, t=0.0):
        self.t = float(t)

    def __call__(self):
        return self.t


class SessionTestCase(unittest.TestCase):

    def setUp(self):
        from services.consent_store import ConsentStore
        from services.engagement_event_log import clear_events
        clear_events()
        self.tmpdir = tempfile.mkdtemp()
        self.store = ConsentStore(os.path.join(self.tmpdir, "consent.json"))
        self.clock = FakeClock()
        self.interventions = []
        self.vectors = []
        self.camera_factory = MagicMock

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def make_session(self, **config_kwargs):
        from engagement_state_detector import EngagementConfig, EngagementStateDetector
        config_kwargs.setdefault("on_intervention_triggered", self.interventions.append)
        config_kwargs.setdefault("on_state_vector_update", self.vectors.append)
        return EngagementStateDetector(
            EngagementConfig(**config_kwargs),
            clock=self.clock,
            consent_store=self.store,
            camera_factory=self.camera_factory,
            language="pt",
        )


class TestEngagementConfig(unittest.TestCase):
    """Validation and copies."""

    def test_defaults(self):
        from engagement_state_detector import EngagementConfig
        c = EngagementConfig()
        self.assertEqual(c.attention_threshold, 0.4)
        self.assertEqual(c.attention_duration_ms, 4000.0)
        self.assertFalse(c.vision_enabled)

    def test_invalid_threshold_raises(self):
        from engagement_state_detector import EngagementConfig
        with self.assertRaises(ValueError):
            EngagementConfig(attention_threshold=1.5)

    def test_invalid_duration_raises(self):
        from engagement_state_detector import EngagementConfig
        with self.assertRaises(ValueError):
            EngagementConfig(attention_duration_ms=0)

    def test_update_unknown_key_raises(self):
        from engagement_state_detector import EngagementConfig
        with self.assertRaises(ValueError):
            EngagementConfig().update(threshold=0.5)

    def test_update_returns_copy(self):
        from engagement_state_detector import EngagementConfig
        c = EngagementConfig()
        c2 = c.update(attention_threshold=0.6)
        self.assertEqual(c.attention_threshold, 0.4)
        self.assertEqual(c2.attention_threshold, 0.6)

    def test_to_dict_camel_case(self):
        from engagement_state_detector import EngagementConfig
        d = EngagementConfig().to_dict()
        self.assertEqual(d["attentionDurationMs"], 4000.0)
        self.assertNotIn("on_intervention_triggered", d)


class TestSessionTick(SessionTestCase):
    """Refresh, fuse, evaluate."""

    def test_initial_state_is_empty(self):
        session = self.make_session()
        v = session.state_vector
        self.assertIsNone(v.attention)
        self.assertEqual(v.sources, frozenset())
        self.assertFalse(session.is_intervention_triggered)

    def test_prolonged_silence_end_to_end(self):
        from services.engagement_event_log import get_and_mark_new_interventions
        from utils.intervention_detector import InterventionType, SuggestedAction
        session = self.make_session()
        self.clock.t = 60001
        v = session.tick()
        self.assertAlmostEqual(v.attention, 0.5 * 0.2 + 0.5 * 0.65)
        self.assertEqual(len(self.interventions), 1)
        reason = self.interventions[0]
        self.assertEqual(reason.type, InterventionType.PROLONGED_SILENCE)
        self.assertEqual(reason.suggested_action, SuggestedAction.ASK_QUESTION)
        self.assertTrue(session.is_intervention_triggered)
        events = get_and_mark_new_interventions()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["data"]["type"], "prolonged_silence")

    def test_hidden_tab_fires_tab_switch(self):
        from utils.intervention_detector import InterventionType
        session = self.make_session()
        self.clock.t = 2000
        session.behavioral.record_interaction()
        session.audio.on_user_speech_start()
        session.behavioral.on_visibility_change(False)
        self.clock.t = 3000
        session.tick()
        self.assertEqual(len(self.interventions), 1)
        self.assertEqual(self.interventions[0].type, InterventionType.TAB_SWITCH)

    def test_attentive_learner_no_intervention(self):
        session = self.make_session()
        for t in range(1000, 10001, 1000):
            self.clock.t = t
            session.audio.on_voice_detected(0.6)
            session.behavioral.record_interaction()
            session.tick()
        self.assertEqual(self.interventions, [])
        self.assertEqual(len(self.vectors), 10)
        self.assertIn("behavioral", session.state_vector.to_dict()["sources"])

    def test_state_vector_callback_errors_are_contained(self):
        def broken(_vector):
            raise RuntimeError("sink down")
        session = self.make_session(on_state_vector_update=broken)
        self.clock.t = 1000
        with self.assertLogs("engagement_state_detector", level="WARNING"):
            session.tick()

    def test_summary(self):
        session = self.make_session()
        self.clock.t = 60001
        session.tick()
        summary = session.get_summary()
        self.assertEqual(summary["sources"], "audio, behavioral")
        self.assertEqual(summary["confusion"], "0%")
        self.assertFalse(summary["visionEnabled"])


class TestResetAndRecalculate(SessionTestCase):
    """reset_all followed by recalculate yields an all-null vector."""

    def test_reset_then_recalculate_is_all_null(self):
        from services.engagement_event_log import get_recent_events
        from utils.state_vector import DIMENSIONS
        session = self.make_session()
        session.audio.analyze_transcript("não entendi", "user")
        session.behavioral.on_visibility_change(False)
        self.clock.t = 65000
        session.tick()
        self.assertTrue(session.is_intervention_triggered)

        session.reset_all()
        v = session.recalculate()
        for dim in DIMENSIONS:
            self.assertIsNone(getattr(v, dim), msg=dim)
        self.assertEqual(v.confidence.overall, 0.0)
        self.assertFalse(session.is_intervention_triggered)
        self.assertEqual(get_recent_events(), [])

    def test_reset_releases_camera(self):
        camera = MagicMock()
        camera.initialize_source.return_value = True
        self.camera_factory = lambda: camera
        session = self.make_session(vision_consent_given=True)
        self.assertTrue(session.vision.enable_vision())
        session.reset_all()
        camera.release.assert_called_once()
        self.assertFalse(session.vision.is_enabled)
        self.assertFalse(session.get_signals()["visionStatus"]["enabled"])

    def test_reset_is_idempotent(self):
        session = self.make_session()
        session.reset_all()
        session.reset_all()
        self.assertIsNone(session.recalculate().attention)

    def test_recalculate_does_not_fire(self):
        session = self.make_session()
        session.behavioral.on_visibility_change(False)
        self.clock.t = 5000
        session.audio.on_user_speech_start()
        session.recalculate()
        self.assertEqual(self.interventions, [])


class TestSessionConfig(SessionTestCase):
    """Runtime configuration changes."""

    def test_update_threshold_applies_to_detector(self):
        session = self.make_session()
        session.update_config(attention_threshold=0.6, attention_duration_ms=2000)
        self.assertEqual(session.intervention_detector.attention_threshold, 0.6)
        self.assertEqual(session.intervention_detector.attention_duration_ms, 2000.0)
        self.assertEqual(session.config.attention_threshold, 0.6)

    def test_invalid_update_keeps_previous_config(self):
        session = self.make_session()
        with self.assertRaises(ValueError):
            session.update_config(attention_threshold=-1)
        self.assertEqual(session.config.attention_threshold, 0.4)

    def test_consent_flag_grants_consent(self):
        session = self.make_session(vision_consent_given=True)
        self.assertTrue(session.vision.has_consent)

    def test_vision_disabled_without_consent(self):
        requested = []
        from engagement_state_detector import EngagementConfig, EngagementStateDetector
        session = EngagementStateDetector(
            EngagementConfig(vision_enabled=True),
            clock=self.clock,
            consent_store=self.store,
            camera_factory=MagicMock,
            on_consent_request=lambda: requested.append(True),
        )
        session.start_detection()
        try:
            self.assertFalse(session.vision.is_enabled)
            self.assertEqual(requested, [True])
        finally:
            session.stop_detection()
        self.assertFalse(session.is_running)

    def test_set_language_applies_to_running_session(self):
        session = self.make_session()
        self.assertEqual(session.set_language(" EN "), "en")
        self.assertEqual(session.language, "en")
        self.assertEqual(session.audio.language, "en")
        self.assertEqual(session.intervention_detector.language, "en")

    def test_set_language_rejects_unknown(self):
        session = self.make_session()
        with self.assertRaises(ValueError):
            session.set_language("fr")
        self.assertEqual(session.audio.language, "pt")

    def test_non_boolean_vision_flag_rejected(self):
        session = self.make_session()
        with self.assertRaises(ValueError):
            session.update_config(vision_enabled="false")
        self.assertFalse(session.config.vision_enabled)


class TestScheduler(SessionTestCase):
    """Background loop lifecycle."""

    def test_restart_leaves_a_single_loop(self):
        session = self.make_session(update_interval_ms=3000)
        session.start_detection()
        first = session.detection_thread
        session.start_detection()
        second = session.detection_thread
        try:
            self.assertIsNot(first, second)
            first.join(timeout=1.0)
            self.assertFalse(first.is_alive())
            self.assertTrue(second.is_alive())
        finally:
            session.stop_detection()
        second.join(timeout=1.0)
        self.assertFalse(second.is_alive())
        self.assertFalse(session.is_running)

    def test_stop_does_not_wait_out_the_interval(self):
        session = self.make_session(update_interval_ms=60000)
        session.start_detection()
        thread = session.detection_thread
        session.stop_detection()
        self.assertFalse(thread.is_alive())


if __name__ == "__main__":
    unittest.main()
