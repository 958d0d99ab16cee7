"""
Per-emotion vector scorers.

Three independent geometric heuristics (smile, anger, sadness) over a
normalized landmark set. Each returns a signed magnitude in a bounded range and
returns 0.0 when a landmark it needs is absent. The empirical reference
magnitudes are in inter-eye-distance units.

Sign conventions: image y grows downward, so a raised mouth corner has a
negative dy from the lip reference and a positive "lift".
"""

from typing import Optional, Tuple

import numpy as np

from utils.face_landmarks import (
    LEFT_EYE_TOP,
    LEFT_EYEBROW_INNER,
    LEFT_EYEBROW_MID,
    LEFT_MOUTH_CORNER,
    RIGHT_EYE_TOP,
    RIGHT_EYEBROW_INNER,
    RIGHT_EYEBROW_MID,
    RIGHT_MOUTH_CORNER,
    UPPER_LIP_TOP,
    get_point,
)
from utils.geometry import EPSILON, clamp, distance, normalize_by, vector


# Smile
FULL_SMILE_MAGNITUDE: float = 0.25
FULL_FROWN_MAGNITUDE: float = 0.20
SYMMETRY_BASE_WEIGHT: float = 0.7
SYMMETRY_WEIGHT: float = 0.3

# Anger
BROW_SLOPE_THRESHOLD: float = 0.1

# Sadness
DROOP_THRESHOLD: float = 0.1
SAD_MOUTH_WEIGHT: float = 0.8
SAD_EYEBROW_WEIGHT: float = 0.2
EYEBROW_EYE_BASELINE: float = 0.08
SADNESS_FLOOR: float = -0.8


def mouth_corner_lifts(normalized: Optional[np.ndarray]) -> Optional[Tuple[float, float]]:
    """(left, right) corner lift relative to the upper-lip reference; positive = raised."""
    lip = get_point(normalized, UPPER_LIP_TOP)
    left = get_point(normalized, LEFT_MOUTH_CORNER)
    right = get_point(normalized, RIGHT_MOUTH_CORNER)
    if lip is None or left is None or right is None:
        return None
    return -vector(lip, left).dy, -vector(lip, right).dy


def corner_symmetry(left_lift: float, right_lift: float) -> float:
    """1.0 for identical lifts, falling toward 0 (or below) as the sides diverge."""
    denom = max(abs(left_lift), abs(right_lift), EPSILON)
    return 1.0 - abs(left_lift - right_lift) / denom


def smile_score(normalized: Optional[np.ndarray]) -> float:
    """
    Smile strength in [-1, 1].

    Positive values are raised corners scaled by the full-smile magnitude;
    negative values are drooping corners scaled by the full-frown magnitude.
    Asymmetric lifts are damped by up to 30%.
    """
    lifts = mouth_corner_lifts(normalized)
    if lifts is None:
        return 0.0
    left_lift, right_lift = lifts
    avg_lift = (left_lift + right_lift) / 2.0
    symmetry = corner_symmetry(left_lift, right_lift)
    raw = avg_lift * (SYMMETRY_BASE_WEIGHT + SYMMETRY_WEIGHT * symmetry)
    if raw > 0:
        return normalize_by(raw, FULL_SMILE_MAGNITUDE, 0.0, 1.0)
    if raw < 0:
        return normalize_by(raw, FULL_FROWN_MAGNITUDE, -1.0, 0.0)
    return 0.0


def eyebrow_slope(normalized: Optional[np.ndarray]) -> Optional[float]:
    """Mean inner-to-mid eyebrow slope; negative when the inner ends sit lower than the arch."""
    slopes = []
    for inner_idx, mid_idx in ((LEFT_EYEBROW_INNER, LEFT_EYEBROW_MID),
                               (RIGHT_EYEBROW_INNER, RIGHT_EYEBROW_MID)):
        inner = get_point(normalized, inner_idx)
        mid = get_point(normalized, mid_idx)
        if inner is None or mid is None:
            return None
        slopes.append(vector(inner, mid).slope())
    return float(np.mean(slopes))


def anger_score(normalized: Optional[np.ndarray]) -> float:
    """Anger in [-1, 0]: eyebrows pulled down toward the midline."""
    slope = eyebrow_slope(normalized)
    if slope is None or slope >= 0:
        return 0.0
    return normalize_by(slope, BROW_SLOPE_THRESHOLD, -1.0, 0.0)


def eyebrow_eye_distance(normalized: Optional[np.ndarray]) -> Optional[float]:
    """Mean distance from each upper eyelid to its eyebrow arch."""
    dists = []
    for eye_idx, brow_idx in ((LEFT_EYE_TOP, LEFT_EYEBROW_MID), (RIGHT_EYE_TOP, RIGHT_EYEBROW_MID)):
        eye = get_point(normalized, eye_idx)
        brow = get_point(normalized, brow_idx)
        if eye is None or brow is None:
            return None
        dists.append(distance(eye, brow))
    return float(np.mean(dists))


def sadness_score(normalized: Optional[np.ndarray]) -> float:
    """
    Sadness in [-0.8, 0].

    Requires drooping mouth corners; any non-negative lift returns 0. The
    eyebrow term only refines the magnitude. Sadness never reaches -1 so it
    cannot outrank a full-strength anger reading.
    """
    lifts = mouth_corner_lifts(normalized)
    if lifts is None:
        return 0.0
    avg_lift = (lifts[0] + lifts[1]) / 2.0
    if avg_lift >= 0:
        return 0.0

    mouth_term = normalize_by(avg_lift, DROOP_THRESHOLD, -1.0, 0.0)
    eyebrow_term = 0.0
    brow_dist = eyebrow_eye_distance(normalized)
    if brow_dist is not None:
        deviation = abs(brow_dist - EYEBROW_EYE_BASELINE) / EYEBROW_EYE_BASELINE
        eyebrow_term = -clamp(deviation, 0.0, 1.0)

    combined = SAD_MOUTH_WEIGHT * mouth_term + SAD_EYEBROW_WEIGHT * eyebrow_term
    return max(SADNESS_FLOOR, combined)
