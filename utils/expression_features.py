"""
Expression Feature Extractor

Named geometric measurements over a normalized landmark set: mouth-corner
lift, eyebrow slope, eye aperture, mouth aspect ratios and symmetry. These are
reported alongside the composite score (state endpoint, diagnostics) and feed
the mouth-ratio smile strength used by the overlay.

Missing landmarks yield neutral defaults (0.0, symmetry 1.0) rather than errors.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Optional

import numpy as np

from utils.face_landmarks import (
    LEFT_EYE_BOTTOM,
    LEFT_EYE_INNER,
    LEFT_EYE_OUTER,
    LEFT_EYE_TOP,
    LEFT_MOUTH_CORNER,
    LOWER_LIP_BOTTOM,
    RIGHT_EYE_BOTTOM,
    RIGHT_EYE_INNER,
    RIGHT_EYE_OUTER,
    RIGHT_EYE_TOP,
    RIGHT_MOUTH_CORNER,
    UPPER_LIP_TOP,
    get_point,
)
from utils.geometry import EPSILON, clamp, distance
from utils.vector_scorers import (
    corner_symmetry,
    eyebrow_eye_distance,
    eyebrow_slope,
    mouth_corner_lifts,
)


# Mouth width:height ratio of a relaxed face and of a broad smile
NEUTRAL_MOUTH_RATIO: float = 1.5
FULL_SMILE_MOUTH_RATIO: float = 2.5


@dataclass
class ExpressionFeatures:
    """Geometric measurements of one frame, in inter-eye-distance units where applicable."""
    left_corner_lift: float = 0.0
    right_corner_lift: float = 0.0
    mouth_corner_lift: float = 0.0  # Mean of both sides; positive = raised
    eyebrow_slope: float = 0.0  # Negative = inner brows lowered
    eyebrow_eye_distance: float = 0.0
    left_eye_aperture: float = 0.0  # Lid opening / eye width
    right_eye_aperture: float = 0.0
    mouth_aspect_ratio: float = 0.0  # Lip opening / mouth width
    mouth_width_ratio: float = 0.0  # Mouth width / lip opening
    symmetry: float = 1.0  # Mouth-corner symmetry (1 = identical lifts)

    @property
    def eye_aperture(self) -> float:
        return (self.left_eye_aperture + self.right_eye_aperture) / 2.0

    def to_dict(self) -> Dict[str, float]:
        d = {k: round(float(v), 4) for k, v in asdict(self).items()}
        d["eye_aperture"] = round(self.eye_aperture, 4)
        return d


def _aperture(lm: np.ndarray, top: int, bottom: int, outer: int, inner: int) -> float:
    t, b = get_point(lm, top), get_point(lm, bottom)
    o, i = get_point(lm, outer), get_point(lm, inner)
    if t is None or b is None or o is None or i is None:
        return 0.0
    width = distance(o, i)
    if width < EPSILON:
        return 0.0
    return distance(t, b) / width


def extract_features(normalized: Optional[np.ndarray]) -> ExpressionFeatures:
    """Compute every named measurement that the landmark set supports."""
    feats = ExpressionFeatures()
    if normalized is None:
        return feats

    lifts = mouth_corner_lifts(normalized)
    if lifts is not None:
        feats.left_corner_lift, feats.right_corner_lift = lifts
        feats.mouth_corner_lift = (lifts[0] + lifts[1]) / 2.0
        feats.symmetry = corner_symmetry(lifts[0], lifts[1])

    slope = eyebrow_slope(normalized)
    if slope is not None:
        feats.eyebrow_slope = slope
    brow_dist = eyebrow_eye_distance(normalized)
    if brow_dist is not None:
        feats.eyebrow_eye_distance = brow_dist

    feats.left_eye_aperture = _aperture(normalized, LEFT_EYE_TOP, LEFT_EYE_BOTTOM, LEFT_EYE_OUTER, LEFT_EYE_INNER)
    feats.right_eye_aperture = _aperture(normalized, RIGHT_EYE_TOP, RIGHT_EYE_BOTTOM, RIGHT_EYE_OUTER, RIGHT_EYE_INNER)

    left = get_point(normalized, LEFT_MOUTH_CORNER)
    right = get_point(normalized, RIGHT_MOUTH_CORNER)
    upper = get_point(normalized, UPPER_LIP_TOP)
    lower = get_point(normalized, LOWER_LIP_BOTTOM)
    if left is not None and right is not None and upper is not None and lower is not None:
        width = distance(left, right)
        height = distance(upper, lower)
        if width > EPSILON:
            feats.mouth_aspect_ratio = height / width
        if height > EPSILON:
            feats.mouth_width_ratio = width / height
    return feats


def mouth_ratio_smile_strength(features: ExpressionFeatures) -> float:
    """
    Smile strength in [0, 1] from the mouth width:height ratio alone.

    Maps the relaxed-to-broad-smile ratio band onto [0, 1]. A closed mouth
    (zero lip opening) has no ratio and scores 0.
    """
    ratio = features.mouth_width_ratio
    if ratio <= 0:
        return 0.0
    span = FULL_SMILE_MOUTH_RATIO - NEUTRAL_MOUTH_RATIO
    return clamp((ratio - NEUTRAL_MOUTH_RATIO) / span, 0.0, 1.0)
