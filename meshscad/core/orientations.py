"""
Canonical spherical sampling pattern for multi-view capture.

Frame convention (after the mesh loader rotates Z-up models):
  +Y is up, +Z is front, +X is right.

Order is part of the downstream contract: frame ``i`` of a capture is
labelled ``VIEW_LABELS[i]``. Never reorder without bumping the protocol.
"""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np

VIEW_PROTOCOL_VERSION = "18x2-v1"

_D = 1.0 / math.sqrt(2.0)

WORLD_UP = (0.0, 1.0, 0.0)


class Orientation(NamedTuple):
    name: str
    direction: tuple[float, float, float]
    up: tuple[float, float, float]

    def direction_vector(self) -> np.ndarray:
        return np.array(self.direction, dtype=float)

    def up_vector(self) -> np.ndarray:
        return np.array(self.up, dtype=float)


_ORIENTATIONS: tuple[Orientation, ...] = (
    # Cardinal. Top/bottom look along Y so "up" points back/front instead.
    Orientation("Top", (0.0, 1.0, 0.0), (0.0, 0.0, -1.0)),
    Orientation("Bottom", (0.0, -1.0, 0.0), (0.0, 0.0, 1.0)),
    Orientation("Front", (0.0, 0.0, 1.0), WORLD_UP),
    Orientation("Back", (0.0, 0.0, -1.0), WORLD_UP),
    Orientation("Left", (-1.0, 0.0, 0.0), WORLD_UP),
    Orientation("Right", (1.0, 0.0, 0.0), WORLD_UP),
    # Horizontal ring (XZ)
    Orientation("Front-Right", (_D, 0.0, _D), WORLD_UP),
    Orientation("Right-Back", (_D, 0.0, -_D), WORLD_UP),
    Orientation("Back-Left", (-_D, 0.0, -_D), WORLD_UP),
    Orientation("Left-Front", (-_D, 0.0, _D), WORLD_UP),
    # Vertical ring through front/back (YZ)
    Orientation("Top-Front", (0.0, _D, _D), WORLD_UP),
    Orientation("Front-Bottom", (0.0, -_D, _D), WORLD_UP),
    Orientation("Bottom-Back", (0.0, -_D, -_D), WORLD_UP),
    Orientation("Back-Top", (0.0, _D, -_D), WORLD_UP),
    # Vertical ring through left/right (XY)
    Orientation("Top-Right", (_D, _D, 0.0), WORLD_UP),
    Orientation("Right-Bottom", (_D, -_D, 0.0), WORLD_UP),
    Orientation("Bottom-Left", (-_D, -_D, 0.0), WORLD_UP),
    Orientation("Left-Top", (-_D, _D, 0.0), WORLD_UP),
)

CARDINAL_COUNT = 6

ORIENTATION_NAMES: tuple[str, ...] = tuple(o.name for o in _ORIENTATIONS)

GLOBAL_SUFFIX = "Global"
DETAIL_SUFFIX = "Local Detail"

VIEW_LABELS: tuple[str, ...] = (
    tuple(f"{name} ({GLOBAL_SUFFIX})" for name in ORIENTATION_NAMES)
    + tuple(f"{name} ({DETAIL_SUFFIX})" for name in ORIENTATION_NAMES)
)


def orientation_table() -> tuple[Orientation, ...]:
    """Return the 18 (direction, up) pairs in their fixed declared order."""
    return _ORIENTATIONS
