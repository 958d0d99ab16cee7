"""
Geometry Utilities

Small vector helpers shared by the normalizer, feature extractor and emotion
scorers. Points are numpy arrays (x, y[, z]); only x and y take part in
distances and angles.
"""

import math
from dataclasses import dataclass

import numpy as np


EPSILON: float = 1e-6


@dataclass(frozen=True)
class Vector2D:
    """Planar displacement between two landmarks (image coordinates, y grows downward)."""
    dx: float
    dy: float

    def magnitude(self) -> float:
        return math.hypot(self.dx, self.dy)

    def angle_degrees(self) -> float:
        """Angle against the +x axis in degrees, range (-180, 180]."""
        return math.degrees(math.atan2(self.dy, self.dx))

    def slope(self) -> float:
        """Vertical change per unit of horizontal run; sign follows dy."""
        return self.dy / max(abs(self.dx), EPSILON)


def distance(p1: np.ndarray, p2: np.ndarray) -> float:
    """Euclidean distance between two points in the image plane."""
    return float(math.hypot(float(p2[0]) - float(p1[0]), float(p2[1]) - float(p1[1])))


def vector(origin: np.ndarray, target: np.ndarray) -> Vector2D:
    """Vector pointing from origin to target."""
    return Vector2D(float(target[0]) - float(origin[0]), float(target[1]) - float(origin[1]))


def centroid(*points: np.ndarray) -> np.ndarray:
    """Mean x/y of the given points."""
    stacked = np.array([[float(p[0]), float(p[1])] for p in points], dtype=np.float64)
    return stacked.mean(axis=0)


def clamp(value: float, low: float, high: float) -> float:
    return float(max(low, min(high, value)))


def normalize_by(value: float, reference: float, low: float, high: float) -> float:
    """Divide value by an empirical reference magnitude and clamp into [low, high]."""
    if abs(reference) < EPSILON:
        return 0.0
    return clamp(value / reference, low, high)
