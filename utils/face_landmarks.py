"""
Face landmark indices and landmark-set access.

MediaPipe face mesh (468 points) indices used by the expression pipeline, plus
helpers that coerce detector output into a float (N, 3) array where absent
points are NaN rows. Left/right follow the mesh labelling, not the mirrored
video shown to the user.
"""

from typing import Any, Optional, Sequence

import numpy as np


MIN_LANDMARKS: int = 468

# Normalization anchors
LEFT_EYE_INNER = 133
RIGHT_EYE_INNER = 362
NOSE_TIP = 1

# Mouth. 13/14 are the inner lip contact points, level with relaxed corners.
LEFT_MOUTH_CORNER = 61
RIGHT_MOUTH_CORNER = 291
UPPER_LIP_TOP = 13
LOWER_LIP_BOTTOM = 14
UPPER_LIP_OUTER = 0
LOWER_LIP_OUTER = 17

# Eyes
LEFT_EYE_OUTER = 33
RIGHT_EYE_OUTER = 263
LEFT_EYE_TOP = 159
LEFT_EYE_BOTTOM = 145
RIGHT_EYE_TOP = 386
RIGHT_EYE_BOTTOM = 374

# Eyebrows
LEFT_EYEBROW_INNER = 55
LEFT_EYEBROW_MID = 105
LEFT_EYEBROW_OUTER = 46
RIGHT_EYEBROW_INNER = 285
RIGHT_EYEBROW_MID = 334
RIGHT_EYEBROW_OUTER = 276

# Other reference points
CHIN_BOTTOM = 152
FOREHEAD_CENTER = 10
MIDPOINT_BETWEEN_EYEBROWS = 168


def as_landmark_array(landmarks: Any) -> Optional[np.ndarray]:
    """
    Coerce a detector landmark set into a float64 (N, 3) array.

    Accepts an (N, 2) / (N, 3) array or a sequence whose items are (x, y[, z])
    tuples, {"x", "y", "z"} dicts, or None for an absent point. Absent points
    become NaN rows. Returns None for None or an empty set.
    """
    if landmarks is None:
        return None
    if isinstance(landmarks, np.ndarray):
        arr = np.asarray(landmarks, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] < 2:
            return None
        if arr.shape[1] == 2:
            arr = np.hstack([arr, np.zeros((arr.shape[0], 1))])
        return arr[:, :3].copy()

    rows = []
    for item in landmarks:
        rows.append(_coerce_point(item))
    if not rows:
        return None
    return np.array(rows, dtype=np.float64)


def _coerce_point(item: Any) -> Sequence[float]:
    if item is None:
        return (np.nan, np.nan, np.nan)
    if isinstance(item, dict):
        if item.get("x") is None or item.get("y") is None:
            return (np.nan, np.nan, np.nan)
        return (float(item["x"]), float(item["y"]), float(item.get("z") or 0.0))
    vals = list(item)
    if len(vals) < 2 or vals[0] is None or vals[1] is None:
        return (np.nan, np.nan, np.nan)
    z = float(vals[2]) if len(vals) > 2 and vals[2] is not None else 0.0
    return (float(vals[0]), float(vals[1]), z)


def has_face(landmarks: Optional[np.ndarray]) -> bool:
    """True when the set is long enough to be a face mesh."""
    return landmarks is not None and landmarks.shape[0] >= MIN_LANDMARKS


def get_point(landmarks: Optional[np.ndarray], index: int) -> Optional[np.ndarray]:
    """Return landmark `index` or None when it is out of range or NaN."""
    if landmarks is None or index < 0 or index >= landmarks.shape[0]:
        return None
    p = landmarks[index]
    if np.isnan(p[0]) or np.isnan(p[1]):
        return None
    return p
