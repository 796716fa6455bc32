"""
Bounding boxes and fit-to-view distance.

distance = (max_dim / 2) / tan(fov / 2)

At that distance a sphere whose diameter is the object's largest extent
touches the edges of a vertical field of view ``fov``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

logger = logging.getLogger(__name__)

# Used whenever there is nothing measurable to frame (no mesh, empty mesh).
DEFAULT_DISTANCE = 100.0


@dataclass(frozen=True)
class BoundingBox:
    min: np.ndarray
    max: np.ndarray

    @classmethod
    def from_bounds(cls, bounds: Iterable[Iterable[float]] | None) -> "BoundingBox":
        """Build from a trimesh-style ``[[minx, miny, minz], [maxx, maxy, maxz]]``."""
        if bounds is None:
            return cls.empty()
        arr = np.asarray(bounds, dtype=float)
        if arr.shape != (2, 3):
            return cls.empty()
        return cls(min=arr[0].copy(), max=arr[1].copy())

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        if len(pts) == 0:
            return cls.empty()
        return cls(min=pts.min(axis=0), max=pts.max(axis=0))

    @classmethod
    def empty(cls) -> "BoundingBox":
        return cls(min=np.full(3, np.inf), max=np.full(3, -np.inf))

    @property
    def is_empty(self) -> bool:
        return bool(np.any(self.max < self.min))

    @property
    def center(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros(3)
        return (self.min + self.max) / 2.0

    @property
    def size(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros(3)
        return self.max - self.min

    @property
    def max_dimension(self) -> float:
        return float(np.max(self.size))

    @property
    def is_degenerate(self) -> bool:
        if self.is_empty:
            return True
        if not (np.all(np.isfinite(self.min)) and np.all(np.isfinite(self.max))):
            return True
        return self.max_dimension <= 0.0


def fit_distance(
    bbox: BoundingBox,
    fov_degrees: float,
    default: float = DEFAULT_DISTANCE,
) -> float:
    """Camera distance that exactly frames ``bbox`` at vertical FOV ``fov_degrees``.

    Degenerate boxes fall back to ``default`` so the camera never sits on
    the object's center.
    """
    if not 0.0 < fov_degrees < 180.0:
        raise ValueError(f"fov_degrees must be in (0, 180), got {fov_degrees}")

    if bbox.is_degenerate:
        logger.info("Degenerate bounding box, using default distance %.1f", default)
        return default

    fov = math.radians(fov_degrees)
    distance = abs((bbox.max_dimension / 2.0) / math.tan(fov / 2.0))
    if not math.isfinite(distance) or distance <= 0.0:
        return default
    return distance
