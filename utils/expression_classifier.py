"""
Expression Aggregator and Composite Score Mapper

Turns the three vector scores into an expression distribution over seven
labels, picks the dominant expression and maps it through an emotion-specific
curve into one signed composite score in [-1, 1] (x100 for display and for the
emotion gate).

Pipeline: landmarks -> normalize -> vector scorers -> classify -> dominant ->
map_to_composite -> post_process.

Known non-linearity: post_process snaps |s| < 0.05 to 0 and stretches weak
signals (0.05..0.1) to at least +/-0.1, which leaves a jump on both sides of 0.
It is kept as observed in the deployed mirror; do not smooth it without a
product decision.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import numpy as np

from utils.expression_features import ExpressionFeatures, extract_features, mouth_ratio_smile_strength
from utils.face_landmarks import as_landmark_array, has_face
from utils.geometry import clamp
from utils.landmark_normalizer import normalize
from utils.vector_scorers import anger_score, sadness_score, smile_score


# Canonical label order; also the tie-break order for dominant().
EMOTION_LABELS: Tuple[str, ...] = (
    "neutral", "happy", "sad", "angry", "surprised", "disgusted", "fearful",
)

ExpressionDistribution = Dict[str, float]

HAPPY_MIN: float = 0.15
ANGRY_MIN: float = 0.12
SAD_MIN: float = 0.15
LOW_SIGNAL_SUM: float = 0.2
LOW_SIGNAL_NEUTRAL_FLOOR: float = 0.7
LOW_SIGNAL_EMOTION_MIN: float = 0.05
LOW_SIGNAL_EMOTION_FLOOR: float = 0.1

DEAD_BAND: float = 0.05
WEAK_BAND: float = 0.1
NEUTRAL_JITTER: float = 0.05

DISPLAY_SCALE: float = 100.0


def neutral_distribution() -> ExpressionDistribution:
    """Distribution reported when no face is present."""
    dist = {label: 0.0 for label in EMOTION_LABELS}
    dist["neutral"] = 1.0
    return dist


def _with_neutral_complement(dist: ExpressionDistribution) -> ExpressionDistribution:
    others = sum(v for k, v in dist.items() if k != "neutral")
    dist["neutral"] = 1.0 - min(1.0, others)
    return dist


def classify(normalized: Optional[np.ndarray]) -> ExpressionDistribution:
    """
    Build the expression distribution from the geometric scorers.

    surprised, disgusted and fearful are always 0 here; only the learned-model
    path (distribution_from_probabilities) fills them.
    """
    smile = smile_score(normalized)
    anger = anger_score(normalized)
    sadness = sadness_score(normalized)

    happy = clamp(smile, 0.0, 1.0)
    angry = clamp(abs(anger), 0.0, 1.0)
    sad = clamp(abs(sadness), 0.0, 1.0)

    dist = {label: 0.0 for label in EMOTION_LABELS}
    dist["happy"] = happy if happy >= HAPPY_MIN else 0.0
    dist["angry"] = angry if angry >= ANGRY_MIN else 0.0
    dist["sad"] = sad if sad >= SAD_MIN else 0.0
    _with_neutral_complement(dist)

    # Near the noise floor hold the face at neutral so the label does not flicker.
    others = dist["happy"] + dist["angry"] + dist["sad"]
    if others < LOW_SIGNAL_SUM:
        dist["neutral"] = max(dist["neutral"], LOW_SIGNAL_NEUTRAL_FLOOR)
        for label in ("happy", "angry", "sad"):
            if dist[label] > LOW_SIGNAL_EMOTION_MIN:
                dist[label] = max(dist[label], LOW_SIGNAL_EMOTION_FLOOR)
    return dist


def distribution_from_probabilities(probabilities: Optional[Mapping[str, Any]]) -> ExpressionDistribution:
    """
    Distribution from a learned expression model (label -> probability).

    Unknown labels are ignored, values are clamped to [0, 1] and the neutral
    complement is recomputed from the emotional labels.
    """
    if not probabilities:
        return neutral_distribution()
    dist = {label: 0.0 for label in EMOTION_LABELS}
    for label, value in probabilities.items():
        key = str(label).lower()
        if key not in dist or key == "neutral":
            continue
        try:
            dist[key] = clamp(float(value), 0.0, 1.0)
        except (TypeError, ValueError):
            continue
    return _with_neutral_complement(dist)


def dominant(distribution: Mapping[str, float]) -> Tuple[str, float]:
    """Highest-weight label; ties go to the label earliest in EMOTION_LABELS."""
    best_label, best_weight = EMOTION_LABELS[0], float(distribution.get(EMOTION_LABELS[0], 0.0))
    for label in EMOTION_LABELS[1:]:
        weight = float(distribution.get(label, 0.0))
        if weight > best_weight:
            best_label, best_weight = label, weight
    return best_label, best_weight


def post_process(score: float) -> float:
    """Dead-band around 0 and amplification of weak signals."""
    if abs(score) < DEAD_BAND:
        return 0.0
    if 0 < score < WEAK_BAND:
        return WEAK_BAND + score * 0.5
    if -WEAK_BAND < score < 0:
        return -WEAK_BAND + score * 0.5
    return score


def map_to_composite(label: str, weight: float, noise: Optional[Callable[[], float]] = None) -> float:
    """
    Map the dominant expression to a signed composite score in [-1, 1].

    Args:
        label: Dominant label from dominant()
        weight: Its weight in [0, 1]
        noise: Optional source of cosmetic jitter for a neutral face; without
               one a neutral face maps to exactly 0

    Returns:
        Post-processed composite score
    """
    w = clamp(weight, 0.0, 1.0)
    if label == "happy":
        raw = w * 0.6 if w < 0.5 else 0.3 + (w - 0.5) * 1.4
    elif label == "angry":
        raw = -w * (0.8 + w * 0.4)
    elif label == "sad":
        raw = -w * 0.9
    elif label in ("disgusted", "fearful"):
        raw = -w * 0.5
    elif label == "surprised":
        raw = w * 0.3
    else:
        raw = clamp(noise(), -NEUTRAL_JITTER, NEUTRAL_JITTER) if noise is not None else 0.0
    return clamp(post_process(raw), -1.0, 1.0)


def uniform_jitter(seed: Optional[int] = None) -> Callable[[], float]:
    """Noise source for map_to_composite: uniform in [-0.05, 0.05]."""
    rng = np.random.default_rng(seed)
    return lambda: float(rng.uniform(-NEUTRAL_JITTER, NEUTRAL_JITTER))


def expression_probability_score(probabilities: Optional[Mapping[str, float]]) -> float:
    """
    Signed smile strength straight from learned-model probabilities.

    happy wins when it beats the stronger of angry/sad; otherwise that negative
    value is reported once it exceeds 0.1; anything else is 0.
    """
    if not probabilities:
        return 0.0
    happy = float(probabilities.get("happy", 0.0) or 0.0)
    negative = max(float(probabilities.get("angry", 0.0) or 0.0), float(probabilities.get("sad", 0.0) or 0.0))
    if happy > negative:
        return happy
    if negative > 0.1:
        return -negative
    return 0.0


def blend_scores(primary: float, secondary: float, primary_weight: float = 0.7) -> float:
    """Weighted blend of two scores on the same scale (default 70/30)."""
    return primary * primary_weight + secondary * (1.0 - primary_weight)


@dataclass
class ExpressionResult:
    """Scoring output for one detection cycle."""
    distribution: ExpressionDistribution
    label: str
    weight: float
    score: float  # Composite, [-1, 1]
    face_detected: bool
    features: ExpressionFeatures = field(default_factory=ExpressionFeatures)
    smile_strength: float = 0.0  # Overlay smile meter, [-1, 1]

    @property
    def display_score(self) -> float:
        """Composite scaled to -100..100 (gate input and on-screen value)."""
        return self.score * DISPLAY_SCALE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.display_score, 2),
            "dominant": self.label,
            "dominantWeight": round(self.weight, 4),
            "distribution": {k: round(v, 4) for k, v in self.distribution.items()},
            "faceDetected": self.face_detected,
            "smileStrength": round(self.smile_strength, 4),
            "features": self.features.to_dict(),
        }


class ExpressionScorer:
    """
    Scores landmark sets (or learned-model probabilities) into ExpressionResults.

    Usage:
        scorer = ExpressionScorer()
        result = scorer.score_landmarks(landmarks)
        gate.ingest(result.display_score)
    """

    def __init__(self, noise: Optional[Callable[[], float]] = None):
        self._noise = noise

    def no_face(self) -> ExpressionResult:
        dist = neutral_distribution()
        return ExpressionResult(distribution=dist, label="neutral", weight=1.0, score=0.0, face_detected=False)

    def score_landmarks(self, landmarks: Any) -> ExpressionResult:
        """None or a set shorter than a face mesh is 'no face', never an error."""
        lm = as_landmark_array(landmarks)
        if not has_face(lm):
            return self.no_face()
        normalized = normalize(lm)
        dist = classify(normalized)
        label, weight = dominant(dist)
        score = map_to_composite(label, weight, self._noise)
        features = extract_features(normalized)
        return ExpressionResult(
            distribution=dist,
            label=label,
            weight=weight,
            score=score,
            face_detected=True,
            features=features,
            smile_strength=mouth_ratio_smile_strength(features),
        )

    def score_probabilities(self, probabilities: Optional[Mapping[str, Any]]) -> ExpressionResult:
        if not probabilities:
            return self.no_face()
        dist = distribution_from_probabilities(probabilities)
        label, weight = dominant(dist)
        score = map_to_composite(label, weight, self._noise)
        return ExpressionResult(
            distribution=dist,
            label=label,
            weight=weight,
            score=score,
            face_detected=True,
            smile_strength=expression_probability_score(dist),
        )

    def score_face(self, landmarks: Any, probabilities: Optional[Mapping[str, Any]] = None) -> ExpressionResult:
        """
        Landmark path, with the smile meter blended 70/30 with a learned-model
        reading when the detector also classified the face.
        """
        result = self.score_landmarks(landmarks)
        if result.face_detected and probabilities:
            learned = expression_probability_score(distribution_from_probabilities(probabilities))
            result.smile_strength = blend_scores(learned, result.smile_strength)
        return result
