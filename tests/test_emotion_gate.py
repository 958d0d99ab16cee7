"""
Emotion gate controller tests.

Drives EmotionGateController with a ManualScheduler (virtual milliseconds) so
escalation, lock countdown, popup and debounce timers fire deterministically.
Speech and presentation collaborators are mocks unless a test needs the real
announcer.
"""

import sys
import os
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _make_gate(gate_config=None, start_ms=0.0):
    from services.emotion_gate import EmotionGateController, GateConfig
    from services.timer_scheduler import ManualScheduler
    sched = ManualScheduler(start_ms)
    speech = MagicMock()
    speech.speak.side_effect = lambda message, kind="message": message
    speech.is_playing.return_value = False
    presentation = MagicMock()
    gate = EmotionGateController(
        sched, speech=speech, presentation=presentation, gate_config=gate_config or GateConfig()
    )
    return gate, sched, speech, presentation


class TestGateTransitions(unittest.TestCase):
    """State changes driven by scores."""

    def test_initial_state(self):
        from services.emotion_gate import GateState
        gate, _, _, _ = _make_gate()
        snap = gate.snapshot()
        self.assertEqual(gate.state, GateState.ANALYZING)
        self.assertEqual(snap.lock_seconds_remaining, 0)
        self.assertEqual(snap.denial_message, "")
        self.assertFalse(snap.popup_visible)
        self.assertIsNone(snap.last_transition_ms)

    def test_negative_score_denies(self):
        from services.emotion_gate import GateState
        from services.presentation_requests import EffectKind
        gate, _, speech, presentation = _make_gate()
        self.assertTrue(gate.ingest(-15, 0))
        self.assertEqual(gate.state, GateState.DENIED)
        speech.speak.assert_called_once_with(gate.config.denial_message, "denial")
        presentation.apply_effect.assert_called_once_with(EffectKind.DISTORTION, 0.3)
        snap = gate.snapshot()
        self.assertEqual(snap.denial_message, gate.config.denial_message)
        self.assertEqual(snap.last_transition_ms, 0)
        self.assertEqual(snap.composite_score, -15)

    def test_threshold_boundaries_are_inclusive(self):
        from services.emotion_gate import GateState
        gate, _, _, _ = _make_gate()
        gate.ingest(-10, 0)
        self.assertEqual(gate.state, GateState.DENIED)
        gate, _, _, _ = _make_gate()
        gate.ingest(12, 0)
        self.assertEqual(gate.state, GateState.APPROVED)

    def test_in_between_score_keeps_analyzing(self):
        from services.emotion_gate import GateState
        gate, _, _, presentation = _make_gate()
        for t, score in ((0, -5), (2000, 11.9), (4000, 0)):
            self.assertTrue(gate.ingest(score, t))
            self.assertEqual(gate.state, GateState.ANALYZING)
        presentation.apply_effect.assert_not_called()

    def test_timestamp_defaults_to_scheduler_clock(self):
        gate, _, _, _ = _make_gate(start_ms=500.0)
        gate.ingest(-15)
        self.assertEqual(gate.snapshot().last_transition_ms, 500.0)

    def test_neutral_score_returns_to_analyzing(self):
        from services.emotion_gate import GateState
        from services.presentation_requests import EffectKind
        gate, sched, speech, presentation = _make_gate()
        gate.ingest(-15, 0)
        sched.advance_to(2000)
        self.assertTrue(gate.ingest(0, 2000))
        self.assertEqual(gate.state, GateState.ANALYZING)
        speech.cancel_speech.assert_called_with("neutral expression")
        presentation.apply_effect.assert_called_with(EffectKind.NONE, None)
        self.assertEqual(gate.snapshot().denial_message, "")
        # Escalation was cancelled with the transition
        sched.advance_to(6000)
        self.assertEqual(gate.state, GateState.ANALYZING)


class TestLockEscalation(unittest.TestCase):
    """DENIED -> LOCKED after a sustained dip and the lock countdown."""

    def test_sustained_dip_locks_once(self):
        from services.emotion_gate import GateState
        gate, sched, speech, _ = _make_gate()
        seen = []
        gate.add_listener(seen.append)

        for t in (0, 2000, 4000, 6000):
            sched.advance_to(t)
            gate.ingest(-15, t)
            self.assertIn(gate.state, (GateState.DENIED, GateState.LOCKED))

        sched.advance_to(7999)
        self.assertEqual(gate.state, GateState.LOCKED)
        self.assertEqual(gate.snapshot().lock_seconds_remaining, 1)

        lock_calls = [c for c in speech.speak.call_args_list if c.args[1] == "lock"]
        self.assertEqual(len(lock_calls), 1)
        self.assertEqual(max(s.lock_seconds_remaining for s in seen), gate.config.lock_duration_sec)

        sched.advance_to(8000)
        snap = gate.snapshot()
        self.assertEqual(snap.gate_state, GateState.ANALYZING)
        self.assertEqual(snap.lock_seconds_remaining, 0)
        self.assertEqual(snap.denial_message, "")

    def test_escalation_shows_lock_message(self):
        from services.emotion_gate import GateState
        from services.presentation_requests import EffectKind
        gate, sched, speech, presentation = _make_gate()
        gate.ingest(-15, 0)
        sched.advance_to(2999)
        self.assertEqual(gate.state, GateState.DENIED)
        sched.advance_to(3000)
        snap = gate.snapshot()
        self.assertEqual(snap.gate_state, GateState.LOCKED)
        self.assertEqual(snap.lock_seconds_remaining, 5)
        self.assertEqual(snap.denial_message, gate.config.lock_message)
        self.assertEqual(snap.last_transition_ms, 3000)
        speech.speak.assert_called_with(gate.config.lock_message, "lock")
        presentation.apply_effect.assert_called_with(EffectKind.DISTORTION, 0.6)

    def test_countdown_decrements_every_second(self):
        gate, sched, _, _ = _make_gate()
        gate.ingest(-15, 0)
        remaining = []
        for t in range(3000, 8001, 1000):
            sched.advance_to(t)
            remaining.append(gate.snapshot().lock_seconds_remaining)
        self.assertEqual(remaining, [5, 4, 3, 2, 1, 0])

    def test_zero_lock_duration_returns_to_analyzing(self):
        from services.emotion_gate import GateConfig, GateState
        gate, sched, speech, _ = _make_gate(GateConfig(lock_duration_sec=0))
        gate.ingest(-15, 0)
        sched.advance_to(3000)
        snap = gate.snapshot()
        self.assertEqual(snap.gate_state, GateState.ANALYZING)
        self.assertEqual(snap.lock_seconds_remaining, 0)
        self.assertEqual(snap.denial_message, "")
        self.assertFalse([c for c in speech.speak.call_args_list if c.args[1] == "lock"])
        self.assertEqual(sched.pending(), 0)

    def test_positive_preempts_pending_escalation(self):
        from services.emotion_gate import GateState
        from services.presentation_requests import EffectKind
        gate, sched, speech, presentation = _make_gate()
        gate.ingest(-15, 0)
        sched.advance_to(2000)
        self.assertTrue(gate.ingest(20, 2000))
        self.assertEqual(gate.state, GateState.APPROVED)
        speech.cancel_speech.assert_called_with("emotion improved")
        presentation.apply_effect.assert_called_with(EffectKind.BEAUTY, None)
        presentation.show_approval_popup.assert_called_once_with()
        sched.advance_to(6000)
        self.assertEqual(gate.state, GateState.APPROVED)
        self.assertEqual(gate.snapshot().lock_seconds_remaining, 0)

    def test_positive_releases_active_lock(self):
        from services.emotion_gate import GateState
        gate, sched, _, _ = _make_gate()
        gate.ingest(-15, 0)
        sched.advance_to(3500)
        self.assertEqual(gate.state, GateState.LOCKED)
        self.assertTrue(gate.ingest(20, 3500))
        snap = gate.snapshot()
        self.assertEqual(snap.gate_state, GateState.APPROVED)
        self.assertEqual(snap.lock_seconds_remaining, 0)
        self.assertEqual(snap.denial_message, "")
        sched.advance_to(10000)
        self.assertEqual(gate.state, GateState.APPROVED)
        self.assertEqual(gate.snapshot().lock_seconds_remaining, 0)


class TestApprovalPopup(unittest.TestCase):
    """Popup visibility and cooldown."""

    def test_popup_shown_with_approval_speech(self):
        gate, _, speech, presentation = _make_gate()
        gate.ingest(20, 0)
        self.assertTrue(gate.snapshot().popup_visible)
        presentation.show_approval_popup.assert_called_once_with()
        speech.speak.assert_called_once_with(gate.config.approval_message, "approval")

    def test_visible_popup_drops_every_score(self):
        from services.emotion_gate import GateState
        gate, sched, _, _ = _make_gate()
        gate.ingest(20, 0)
        sched.advance_to(3000)
        self.assertFalse(gate.ingest(-15, 3000))
        self.assertFalse(gate.ingest(30, 3000))
        self.assertEqual(gate.state, GateState.APPROVED)
        sched.advance_to(10500)
        self.assertFalse(gate.snapshot().popup_visible)
        self.assertTrue(gate.ingest(-15, 10500))
        self.assertEqual(gate.state, GateState.DENIED)

    def test_popup_cooldown(self):
        from services.emotion_gate import GateConfig
        gate, sched, _, presentation = _make_gate(GateConfig(popup_duration_ms=1000))
        for t in (0, 2000, 5000):
            sched.advance_to(t)
            self.assertTrue(gate.ingest(20, t))
        self.assertEqual(presentation.show_approval_popup.call_count, 1)
        sched.advance_to(6000)
        self.assertTrue(gate.ingest(20, 6000))
        self.assertEqual(presentation.show_approval_popup.call_count, 2)


class TestDebounce(unittest.TestCase):
    """Debounce windows, processing guard and speech guard."""

    def test_other_window_is_two_seconds(self):
        from services.emotion_gate import GateState
        gate, sched, _, _ = _make_gate()
        gate.ingest(-15, 0)
        sched.advance_to(1500)
        self.assertFalse(gate.ingest(0, 1500))
        self.assertEqual(gate.state, GateState.DENIED)
        sched.advance_to(2000)
        self.assertTrue(gate.ingest(0, 2000))
        self.assertEqual(gate.state, GateState.ANALYZING)

    def test_positive_window_is_one_second(self):
        from services.emotion_gate import GateState
        gate, sched, _, _ = _make_gate()
        gate.ingest(-15, 0)
        self.assertFalse(gate.ingest(20, 999))
        sched.advance_to(1000)
        self.assertTrue(gate.ingest(20, 1000))
        self.assertEqual(gate.state, GateState.APPROVED)

    def test_processing_drops_non_positive(self):
        from services.emotion_gate import GateConfig, GateState
        gate, sched, _, _ = _make_gate(GateConfig(other_debounce_ms=0, positive_debounce_ms=0))
        gate.ingest(-15, 0)
        self.assertFalse(gate.ingest(0, 500))
        self.assertTrue(gate.ingest(20, 500))
        self.assertEqual(gate.state, GateState.APPROVED)

    def test_processing_released_by_timer(self):
        from services.emotion_gate import GateConfig, GateState
        gate, sched, _, _ = _make_gate(GateConfig(other_debounce_ms=0))
        gate.ingest(-15, 0)
        self.assertFalse(gate.ingest(0, 999))
        sched.advance_to(1000)
        self.assertTrue(gate.ingest(0, 1000))
        self.assertEqual(gate.state, GateState.ANALYZING)

    def test_speech_playing_drops_all_but_positive(self):
        from services.emotion_gate import GateState
        gate, _, speech, _ = _make_gate()
        speech.is_playing.return_value = True
        self.assertFalse(gate.ingest(-15, 0))
        self.assertEqual(gate.state, GateState.ANALYZING)
        self.assertTrue(gate.snapshot().speech_playing)
        self.assertTrue(gate.ingest(20, 0))
        self.assertEqual(gate.state, GateState.APPROVED)


class TestClockReset(unittest.TestCase):
    """Timestamps earlier than the last accepted change."""

    def test_backwards_timestamp_restarts_debounce(self):
        from services.emotion_gate import GateState
        gate, _, _, presentation = _make_gate()
        self.assertTrue(gate.ingest(-50, 3600000))
        self.assertEqual(gate.state, GateState.DENIED)
        self.assertTrue(gate.ingest(80, 20000))
        self.assertEqual(gate.state, GateState.APPROVED)
        presentation.show_approval_popup.assert_called_once_with()

    def test_backwards_timestamp_restarts_popup_cooldown(self):
        gate, sched, _, presentation = _make_gate()
        gate.ingest(20, 100000)
        sched.advance_to(11000)  # popup closed
        self.assertTrue(gate.ingest(20, 50000))
        self.assertEqual(presentation.show_approval_popup.call_count, 2)

    def test_forward_timestamps_still_debounced(self):
        gate, _, _, _ = _make_gate()
        gate.ingest(-50, 10000)
        self.assertFalse(gate.ingest(0, 11000))


class TestGateRobustness(unittest.TestCase):
    """Invalid input, collaborator failures, listeners and close()."""

    def test_invalid_scores_rejected(self):
        from services.emotion_gate import GateState
        gate, _, _, _ = _make_gate()
        for bad in ("abc", None, float("nan"), 150, -100.5):
            with self.assertLogs("services.emotion_gate", level="WARNING"):
                self.assertFalse(gate.ingest(bad, 0))
        self.assertEqual(gate.state, GateState.ANALYZING)
        self.assertTrue(gate.ingest(-100, 0))

    def test_numeric_strings_accepted(self):
        from services.emotion_gate import GateState
        gate, _, _, _ = _make_gate()
        self.assertTrue(gate.ingest("-42.5", 0))
        self.assertEqual(gate.state, GateState.DENIED)

    def test_collaborator_failures_do_not_block_transition(self):
        from services.emotion_gate import GateState
        gate, sched, speech, presentation = _make_gate()
        speech.speak.side_effect = RuntimeError("no voices")
        presentation.apply_effect.side_effect = RuntimeError("page gone")
        with self.assertLogs("services.emotion_gate", level="WARNING"):
            self.assertTrue(gate.ingest(-15, 0))
        self.assertEqual(gate.state, GateState.DENIED)
        self.assertEqual(gate.snapshot().denial_message, gate.config.denial_message)
        with self.assertLogs("services.emotion_gate", level="WARNING"):
            sched.advance_to(3000)
        self.assertEqual(gate.state, GateState.LOCKED)

    def test_speech_status_failure_counts_as_silent(self):
        from services.emotion_gate import GateState
        gate, _, speech, _ = _make_gate()
        speech.is_playing.side_effect = RuntimeError("boom")
        with self.assertLogs("services.emotion_gate", level="WARNING"):
            self.assertTrue(gate.ingest(-15, 0))
        self.assertEqual(gate.state, GateState.DENIED)

    def test_works_without_collaborators(self):
        from services.emotion_gate import EmotionGateController, GateConfig, GateState
        from services.timer_scheduler import ManualScheduler
        sched = ManualScheduler()
        gate = EmotionGateController(sched, gate_config=GateConfig())
        gate.ingest(-15, 0)
        sched.advance_to(3000)
        self.assertEqual(gate.state, GateState.LOCKED)
        self.assertEqual(gate.snapshot().denial_message, GateConfig().lock_message)

    def test_listeners_notified_after_ingest_and_timers(self):
        from services.emotion_gate import GateState
        gate, sched, _, _ = _make_gate()
        seen = []
        gate.add_listener(seen.append)
        gate.ingest(-15, 0)
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].gate_state, GateState.DENIED)
        sched.advance_to(3000)  # release at 1000, escalation at 3000
        self.assertEqual(len(seen), 3)
        self.assertEqual(seen[-1].gate_state, GateState.LOCKED)

    def test_failing_listener_is_logged(self):
        gate, _, _, _ = _make_gate()

        def broken(snapshot):
            raise ValueError("bad listener")

        gate.add_listener(broken)
        with self.assertLogs("services.emotion_gate", level="WARNING"):
            self.assertTrue(gate.ingest(-15, 0))

    def test_close_cancels_timers(self):
        from services.emotion_gate import GateState
        gate, sched, _, _ = _make_gate()
        gate.ingest(-15, 0)
        self.assertGreater(sched.pending(), 0)
        gate.close()
        gate.close()
        self.assertTrue(gate.closed)
        self.assertEqual(sched.pending(), 0)
        sched.advance_to(10000)
        self.assertEqual(gate.state, GateState.DENIED)
        self.assertFalse(gate.ingest(20, 10000))

    def test_snapshot_dict_shape(self):
        gate, _, _, _ = _make_gate()
        gate.ingest(-15.456, 0)
        d = gate.snapshot().to_dict()
        self.assertEqual(d["gateState"], "denied")
        self.assertEqual(d["compositeScore"], -15.46)
        for key in ("lockSecondsRemaining", "denialMessage", "popupVisible", "speechPlaying", "lastTransitionMs"):
            self.assertIn(key, d)


class TestGateWithRealCollaborators(unittest.TestCase):
    """Gate + SpeechAnnouncer + PresentationRequests on one virtual clock."""

    def test_denial_lock_cycle(self):
        from services.emotion_gate import EmotionGateController, GateConfig, GateState
        from services.presentation_requests import PresentationRequests
        from services.speech_announcer import SpeechAnnouncer
        from services.timer_scheduler import ManualScheduler

        sched = ManualScheduler()
        speech = SpeechAnnouncer(clock=sched.now_ms, max_utterance_ms=8000)
        presentation = PresentationRequests()
        cfg = GateConfig()
        gate = EmotionGateController(sched, speech=speech, presentation=presentation, gate_config=cfg)

        self.assertTrue(gate.ingest(-15, 0))
        sched.advance_to(3100)
        self.assertEqual(gate.state, GateState.LOCKED)
        self.assertEqual(gate.snapshot().lock_seconds_remaining, 5)

        # Lock message is still playing
        self.assertFalse(gate.ingest(-15, 3100))

        texts = [a["text"] for a in speech.get_and_clear_pending()["announcements"]]
        self.assertEqual(texts, [cfg.denial_message, cfg.lock_message])
        effect = presentation.current_effect()
        self.assertEqual((effect["kind"], effect["intensity"]), ("distortion", 0.6))

        sched.advance_to(8100)
        snap = gate.snapshot()
        self.assertEqual(snap.gate_state, GateState.ANALYZING)
        self.assertEqual(snap.lock_seconds_remaining, 0)
        self.assertEqual(presentation.current_effect()["kind"], "none")

    def test_smile_cancels_queued_speech(self):
        from services.emotion_gate import EmotionGateController, GateConfig, GateState
        from services.presentation_requests import PresentationRequests
        from services.speech_announcer import SpeechAnnouncer
        from services.timer_scheduler import ManualScheduler

        sched = ManualScheduler()
        speech = SpeechAnnouncer(clock=sched.now_ms, max_utterance_ms=8000)
        presentation = PresentationRequests()
        gate = EmotionGateController(sched, speech=speech, presentation=presentation, gate_config=GateConfig())

        gate.ingest(-15, 0)
        sched.advance_to(1000)
        self.assertTrue(gate.ingest(25, 1000))
        self.assertEqual(gate.state, GateState.APPROVED)
        out = speech.get_and_clear_pending()
        self.assertEqual(out["cancelReason"], "emotion improved")
        self.assertEqual([a["kind"] for a in out["announcements"]], ["approval"])
        self.assertEqual(presentation.popup_count, 1)


class TestGateConfig(unittest.TestCase):
    """GateConfig defaults and config.py overrides."""

    def test_defaults(self):
        from services.emotion_gate import GateConfig
        cfg = GateConfig()
        self.assertEqual((cfg.negative_threshold, cfg.positive_threshold), (-10.0, 12.0))
        self.assertEqual(cfg.denial_to_lock_ms, 3000.0)
        self.assertEqual(cfg.lock_duration_sec, 5)
        self.assertEqual(cfg.popup_cooldown_ms, 5000.0)

    def test_from_config_reads_module_values(self):
        import config
        from services.emotion_gate import GateConfig
        with patch.object(config, "EMOTION_NEGATIVE_THRESHOLD", -20.0), \
                patch.object(config, "LOCK_DURATION_SEC", 7):
            cfg = GateConfig.from_config()
        self.assertEqual(cfg.negative_threshold, -20.0)
        self.assertEqual(cfg.lock_duration_sec, 7)
        self.assertEqual(cfg.to_dict()["thresholds"]["negative"], -20.0)


if __name__ == "__main__":
    unittest.main()
