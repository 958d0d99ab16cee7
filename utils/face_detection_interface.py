"""
Face Detection Interface Module

Abstract interface for the face detector behind the mirror. The session only
needs the landmark set of the first face in a frame (and, for backends that
have one, a learned expression distribution), so any backend that can produce
a 468-point face mesh can be plugged in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np


@dataclass
class FaceDetectionResult:
    """
    One detected face.

    Landmarks are in pixel coordinates of the analysed frame; only their shape
    matters to the expression pipeline, which normalizes them itself.
    """
    landmarks: np.ndarray  # (N, 3) face mesh points
    bounding_box: Optional[Tuple[int, int, int, int]] = None  # (left, top, width, height)
    confidence: float = 1.0
    expressions: Optional[Dict[str, float]] = None  # label -> probability, if the backend classifies


class FaceDetectorInterface(ABC):
    """
    Abstract interface for face detection backends.

    Constructing a backend may be slow (model loading) and may raise; the
    DetectorHandle owns that lifecycle and its retries.
    """

    @abstractmethod
    def detect_faces(self, image: np.ndarray) -> List[FaceDetectionResult]:
        """
        Detect faces in an image.

        Args:
            image: BGR image array (OpenCV format)

        Returns:
            List of FaceDetectionResult objects, first (most prominent) face first
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """True while the backend can process frames."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Backend name (e.g. "mediapipe")."""
        pass

    def close(self) -> None:
        """
        Clean up resources. Override if needed.

        Default implementation does nothing.
        """
        pass
