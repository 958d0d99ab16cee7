"""
MediaPipe Face Mesh Detector

FaceDetectorInterface implementation backed by MediaPipe Face Mesh. The mirror
tracks a single face and only needs the 468-point mesh (no iris refinement):
1. Primary: FaceMesh in tracking mode (fast, continuous)
2. Fallback: FaceMesh in static mode after a tracking miss (re-acquires new faces)
"""

import logging
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

import config
from utils.face_detection_interface import FaceDetectorInterface, FaceDetectionResult

logger = logging.getLogger(__name__)


class MediaPipeFaceDetector(FaceDetectorInterface):
    """
    MediaPipe-based single-face mesh detector.

    Construction loads the Face Mesh graph and raises if MediaPipe cannot
    initialise; DetectorHandle retries it.
    """

    def __init__(
        self,
        min_detection_confidence: Optional[float] = None,
        min_tracking_confidence: Optional[float] = None,
    ):
        """
        Args:
            min_detection_confidence: Minimum face detection confidence (0-1); default from config
            min_tracking_confidence: Minimum tracking confidence (0-1); default from config
        """
        det = config.DETECTOR_MIN_DETECTION_CONFIDENCE if min_detection_confidence is None else min_detection_confidence
        track = config.DETECTOR_MIN_TRACKING_CONFIDENCE if min_tracking_confidence is None else min_tracking_confidence
        self._det_conf = max(0.01, min(0.99, float(det)))
        self._track_conf = max(0.01, min(0.99, float(track)))

        self.mp_face_mesh = mp.solutions.face_mesh
        self.face_mesh = self._create_mesh(static=False)
        # Static-mode fallback is created on first tracking miss
        self._face_mesh_static = None
        self._available = True
        logger.info("MediaPipe Face Mesh ready (detection=%.2f, tracking=%.2f)", self._det_conf, self._track_conf)

    def _create_mesh(self, static: bool):
        return self.mp_face_mesh.FaceMesh(
            static_image_mode=static,
            max_num_faces=1,
            refine_landmarks=False,
            min_detection_confidence=self._det_conf,
            min_tracking_confidence=self._track_conf,
        )

    def detect_faces(self, image: np.ndarray) -> List[FaceDetectionResult]:
        """
        Detect the face mesh in a BGR frame.

        Args:
            image: BGR image array

        Returns:
            Zero or one FaceDetectionResult
        """
        if image is None or image.size == 0:
            return []

        rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        height, width = image.shape[:2]

        results = self.face_mesh.process(rgb_image)
        if results.multi_face_landmarks:
            return self._extract_landmarks(results, width, height)

        if self._face_mesh_static is None:
            self._face_mesh_static = self._create_mesh(static=True)
        results_static = self._face_mesh_static.process(rgb_image)
        if results_static.multi_face_landmarks:
            return self._extract_landmarks(results_static, width, height)
        return []

    def _extract_landmarks(self, results, width: int, height: int) -> List[FaceDetectionResult]:
        """Convert MediaPipe normalized landmarks to pixel coordinates."""
        face_results = []
        for face_landmarks in results.multi_face_landmarks:
            landmarks_array = np.array(
                [[lm.x * width, lm.y * height, lm.z * width] for lm in face_landmarks.landmark],
                dtype=np.float64,
            )
            left = int(np.min(landmarks_array[:, 0]))
            top = int(np.min(landmarks_array[:, 1]))
            right = int(np.max(landmarks_array[:, 0]))
            bottom = int(np.max(landmarks_array[:, 1]))
            face_results.append(
                FaceDetectionResult(
                    landmarks=landmarks_array,
                    bounding_box=(left, top, right - left, bottom - top),
                    confidence=1.0,  # Face Mesh reports no per-face confidence
                )
            )
        return face_results

    def is_available(self) -> bool:
        return self._available

    def get_name(self) -> str:
        return "mediapipe"

    def close(self) -> None:
        """Release MediaPipe graphs."""
        self._available = False
        for mesh in (self.face_mesh, self._face_mesh_static):
            if mesh is None:
                continue
            try:
                mesh.close()
            except Exception as e:
                logger.debug("Face Mesh close failed: %s", e)
        self._face_mesh_static = None
