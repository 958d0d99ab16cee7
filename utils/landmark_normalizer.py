"""
Landmark Normalizer

Maps a raw landmark set (video pixels) into a face-centred frame scaled by the
inter-eye distance, so every downstream threshold is independent of camera
resolution and of how far the user stands from the mirror.

The transform is not a round trip: normalizing an already normalized set
recomputes the anchors and generally shifts the origin again.
"""

from typing import Any, Optional

import numpy as np

from utils.face_landmarks import (
    LEFT_EYE_INNER,
    NOSE_TIP,
    RIGHT_EYE_INNER,
    as_landmark_array,
    get_point,
)
from utils.geometry import EPSILON, centroid, distance


def normalize(landmarks: Any) -> Optional[np.ndarray]:
    """
    Normalize a landmark set around the eye/nose anchors.

    Args:
        landmarks: (N, 2|3) array or sequence of points (see as_landmark_array)

    Returns:
        A new float64 (N, 3) array with the anchor centroid at the origin and an
        inter-eye distance of exactly 1.0. z is passed through unscaled. When an
        anchor is missing, or the eyes coincide, the coerced input is returned
        unchanged; callers must tolerate un-normalized data.
    """
    lm = as_landmark_array(landmarks)
    if lm is None:
        return None

    left_eye = get_point(lm, LEFT_EYE_INNER)
    right_eye = get_point(lm, RIGHT_EYE_INNER)
    nose = get_point(lm, NOSE_TIP)
    if left_eye is None or right_eye is None or nose is None:
        return lm

    scale = distance(left_eye, right_eye)
    if scale < EPSILON:
        return lm

    cx, cy = centroid(left_eye, right_eye, nose)
    out = lm.copy()
    out[:, 0] = (lm[:, 0] - cx) / scale
    out[:, 1] = (lm[:, 1] - cy) / scale
    return out


def inter_eye_distance(landmarks: Optional[np.ndarray]) -> float:
    """Distance between the eye-inner anchors, 0.0 when either is absent."""
    left_eye = get_point(landmarks, LEFT_EYE_INNER)
    right_eye = get_point(landmarks, RIGHT_EYE_INNER)
    if left_eye is None or right_eye is None:
        return 0.0
    return distance(left_eye, right_eye)
