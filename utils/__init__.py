"""
Utilities package for the Emotion Mirror.

This package contains the expression pipeline (landmark access, normalization,
vector scorers, features, classifier), the face detector interface and its
lifecycle handle, and frame decoding. The MediaPipe backend is not imported
here; DetectorHandle loads it on first start.
"""

from .face_detection_interface import FaceDetectorInterface, FaceDetectionResult
from .detector_handle import DetectorHandle, DetectorState, RetryPolicy
from .expression_classifier import ExpressionResult, ExpressionScorer, EMOTION_LABELS
from .expression_features import ExpressionFeatures, extract_features
from .landmark_normalizer import normalize

__all__ = [
    'FaceDetectorInterface',
    'FaceDetectionResult',
    'DetectorHandle',
    'DetectorState',
    'RetryPolicy',
    'ExpressionResult',
    'ExpressionScorer',
    'EMOTION_LABELS',
    'ExpressionFeatures',
    'extract_features',
    'normalize',
]
