"""
Mirror Session.

Ties one detection pipeline to one emotion gate: camera frame → face detector
(first face) → landmarks → expression scorer → composite score (-100..100) →
EmotionGateController → speech / effect / popup requests.

A frame without a face (or while the detector is still loading) still produces
a neutral ExpressionResult for display, but is not fed to the gate. The page
may also post landmarks, learned-model expression probabilities, or a raw score
directly when it runs its own detector.
"""

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np

from services.emotion_gate import EmotionGateController, GateConfig, GateSnapshot
from services.presentation_requests import PresentationRequests
from services.speech_announcer import SpeechAnnouncer
from services.timer_scheduler import Scheduler, ThreadingScheduler
from utils.detector_handle import DetectorHandle
from utils.expression_classifier import ExpressionResult, ExpressionScorer

logger = logging.getLogger(__name__)


class MirrorSession:
    """
    One running mirror: detector handle, scorer and gate with its collaborators.

    Usage:
        session = MirrorSession(detector_handle=DetectorHandle())
        session.start()
        result = session.process_frame(frame)
        state = session.get_state()
        session.stop()
    """

    def __init__(
        self,
        detector_handle: Optional[DetectorHandle] = None,
        scheduler: Optional[Scheduler] = None,
        speech: Optional[SpeechAnnouncer] = None,
        presentation: Optional[PresentationRequests] = None,
        gate_config: Optional[GateConfig] = None,
        scorer: Optional[ExpressionScorer] = None,
        update_callback: Optional[Callable[[GateSnapshot], None]] = None,
    ):
        """
        Args:
            detector_handle: Face detector lifecycle; None when the page posts landmarks itself
            scheduler: Timer source for the gate (default: real-time ThreadingScheduler)
            speech: Speech announcer (default: SpeechAnnouncer on the scheduler clock)
            presentation: Effect/popup request sink (default: new PresentationRequests)
            gate_config: Gate thresholds, timings and messages (default: from config)
            scorer: Expression scorer (default: deterministic, no neutral jitter)
            update_callback: Called with a gate snapshot after every gate change
        """
        self.scheduler = scheduler or ThreadingScheduler()
        self.speech = speech or SpeechAnnouncer(clock=self.scheduler.now_ms)
        self.presentation = presentation or PresentationRequests()
        self.scorer = scorer or ExpressionScorer()
        self.detector_handle = detector_handle
        self.gate = EmotionGateController(
            self.scheduler,
            speech=self.speech,
            presentation=self.presentation,
            gate_config=gate_config,
        )
        if update_callback is not None:
            self.gate.add_listener(update_callback)

        self.lock = threading.Lock()
        self.is_running = False
        self._last_result: Optional[ExpressionResult] = None
        self._frames_processed = 0
        self._faces_detected = 0

    def start(self) -> None:
        """Start the detector handle (if any). The gate is live from construction."""
        self.is_running = True
        if self.detector_handle is not None:
            self.detector_handle.start()
        logger.info("Mirror session started (detector=%s)", "yes" if self.detector_handle else "no")

    def stop(self) -> None:
        """Tear down gate timers and the detector, and drop pending announcements."""
        self.is_running = False
        self.gate.close()
        if self.detector_handle is not None:
            self.detector_handle.stop()
        self.speech.clear()
        logger.info("Mirror session stopped")

    def process_frame(self, frame: Optional[np.ndarray], now_ms: Optional[float] = None) -> ExpressionResult:
        """Detect the first face in a BGR frame and run it through the landmark path."""
        face = self.detector_handle.detect(frame) if self.detector_handle is not None else None
        if face is None:
            return self.process_landmarks(None, now_ms)
        result = self.scorer.score_face(face.landmarks, face.expressions)
        self._record(result)
        if result.face_detected:
            self.gate.ingest(result.display_score, now_ms)
        return result

    def process_landmarks(self, landmarks: Any, now_ms: Optional[float] = None) -> ExpressionResult:
        """Score one landmark set; ingests the composite only when a face is present."""
        result = self.scorer.score_landmarks(landmarks)
        self._record(result)
        if result.face_detected:
            self.gate.ingest(result.display_score, now_ms)
        return result

    def process_expressions(
        self, probabilities: Optional[Mapping[str, Any]], now_ms: Optional[float] = None
    ) -> ExpressionResult:
        """Score a learned-model expression distribution (label -> probability)."""
        result = self.scorer.score_probabilities(probabilities)
        self._record(result)
        if result.face_detected:
            self.gate.ingest(result.display_score, now_ms)
        return result

    def process_score(self, score: float, now_ms: Optional[float] = None) -> bool:
        """Feed a raw composite score (-100..100) to the gate; True if it was evaluated."""
        return self.gate.ingest(score, now_ms)

    def _record(self, result: ExpressionResult) -> None:
        with self.lock:
            self._last_result = result
            self._frames_processed += 1
            if result.face_detected:
                self._faces_detected += 1

    def get_state(self) -> Dict[str, Any]:
        """Gate snapshot plus last expression result, effect and detector status."""
        state = self.gate.snapshot().to_dict()
        with self.lock:
            last = self._last_result
            frames = self._frames_processed
            faces = self._faces_detected
        state.update({
            "running": self.is_running,
            "expression": last.to_dict() if last is not None else None,
            "effect": self.presentation.current_effect(),
            "popupCount": self.presentation.popup_count,
            "detector": self.detector_handle.to_dict() if self.detector_handle is not None else None,
            "framesProcessed": frames,
            "facesDetected": faces,
        })
        return state
