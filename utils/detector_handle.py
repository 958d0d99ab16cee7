"""
Detector Handle

Owns the face detector's lifecycle for a mirror session:

    UNINITIALIZED -> LOADING -> READY
                        |
                        +--> (retry after backoff) ... -> FAILED

Loading the model may fail (missing model files, no GPU/EGL context, slow
download). Failed attempts are retried on the session's scheduler with a fixed
backoff until the retry policy is exhausted. Frames that arrive while the
detector is not READY are reported as "no face".
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import numpy as np

import config
from services.timer_scheduler import Scheduler, ThreadingScheduler, TimerHandle
from utils.face_detection_interface import FaceDetectionResult, FaceDetectorInterface

logger = logging.getLogger(__name__)

DetectorFactory = Callable[[], FaceDetectorInterface]


class DetectorState(Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Initialization retries: total attempts and fixed delay between them."""
    max_attempts: int = 3
    backoff_ms: float = 5000.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(config.DETECTOR_INIT_MAX_ATTEMPTS)),
            backoff_ms=float(config.DETECTOR_RETRY_DELAY_MS),
        )


def default_detector_factory() -> FaceDetectorInterface:
    """MediaPipe Face Mesh; imported lazily so the service starts without loading the model."""
    from utils.mediapipe_detector import MediaPipeFaceDetector
    return MediaPipeFaceDetector()


class DetectorHandle:
    """
    Lazily created, retried face detector.

    Usage:
        handle = DetectorHandle(scheduler=sched)
        handle.start()
        face = handle.detect(frame)   # None until READY, or when no face is found
        handle.stop()
    """

    def __init__(
        self,
        factory: Optional[DetectorFactory] = None,
        scheduler: Optional[Scheduler] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._factory = factory or default_detector_factory
        self._scheduler = scheduler or ThreadingScheduler()
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self._lock = threading.RLock()
        self._detect_lock = threading.Lock()
        self._state = DetectorState.UNINITIALIZED
        self._detector: Optional[FaceDetectorInterface] = None
        self._retry_timer: Optional[TimerHandle] = None
        self._attempts = 0
        self._last_error: Optional[str] = None
        # Bumped by stop() so a retry armed by an earlier start() is ignored
        self._generation = 0

    @property
    def state(self) -> DetectorState:
        with self._lock:
            return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def is_ready(self) -> bool:
        return self.state == DetectorState.READY

    def start(self) -> None:
        """Begin loading. No-op while LOADING or READY; restarts from FAILED."""
        with self._lock:
            if self._state in (DetectorState.LOADING, DetectorState.READY):
                return
            self._attempts = 0
            self._last_error = None
            generation = self._generation
        self._attempt(generation)

    def _attempt(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._retry_timer = None
            self._state = DetectorState.LOADING
            self._attempts += 1
            attempt = self._attempts
        try:
            detector = self._factory()
        except Exception as e:
            self._on_attempt_failed(generation, attempt, e)
            return

        with self._lock:
            if generation != self._generation:
                # Stopped while loading
                self._close_detector(detector)
                return
            self._detector = detector
            self._state = DetectorState.READY
        logger.info("Face detector ready (%s, attempt %d)", self._detector_name(detector), attempt)

    def _on_attempt_failed(self, generation: int, attempt: int, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._last_error = str(error)
            if attempt >= self.retry_policy.max_attempts:
                self._state = DetectorState.FAILED
                logger.warning("Face detector failed after %d attempt(s): %s", attempt, error)
                return
            logger.warning(
                "Face detector init failed (attempt %d/%d): %s; retrying in %.0fms",
                attempt, self.retry_policy.max_attempts, error, self.retry_policy.backoff_ms,
            )
            self._retry_timer = self._scheduler.call_later(
                self.retry_policy.backoff_ms, lambda: self._attempt(generation)
            )

    def detect(self, frame: Optional[np.ndarray]) -> Optional[FaceDetectionResult]:
        """
        First detected face in a BGR frame.

        Returns None when the detector is not READY, the frame is empty, no face
        is found, or the backend raises (logged).
        """
        if frame is None or getattr(frame, "size", 0) == 0:
            return None
        with self._lock:
            detector = self._detector if self._state == DetectorState.READY else None
        if detector is None:
            return None
        try:
            with self._detect_lock:
                faces = detector.detect_faces(frame)
        except Exception as e:
            logger.warning("Face detection failed: %s", e)
            return None
        return faces[0] if faces else None

    def stop(self) -> None:
        """Cancel pending retries and release the detector."""
        with self._lock:
            self._generation += 1
            if self._retry_timer is not None:
                self._retry_timer.cancel()
                self._retry_timer = None
            detector = self._detector
            self._detector = None
            self._state = DetectorState.UNINITIALIZED
        if detector is not None:
            self._close_detector(detector)

    @staticmethod
    def _close_detector(detector: FaceDetectorInterface) -> None:
        try:
            detector.close()
        except Exception as e:
            logger.warning("Face detector close failed: %s", e)

    @staticmethod
    def _detector_name(detector: Any) -> str:
        try:
            return detector.get_name()
        except Exception:
            return type(detector).__name__

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "attempts": self._attempts,
                "maxAttempts": self.retry_policy.max_attempts,
                "lastError": self._last_error,
                "backend": self._detector_name(self._detector) if self._detector is not None else None,
            }
