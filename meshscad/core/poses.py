from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

from .orientations import DETAIL_SUFFIX, GLOBAL_SUFFIX, Orientation, orientation_table

STANDARD_MARGIN = 1.6
DETAIL_ZOOM = 0.55


class DistanceRegime(str, Enum):
    standard = "standard"
    detail = "detail"


@dataclass(frozen=True)
class CapturePose:
    name: str
    regime: DistanceRegime
    direction: tuple[float, float, float]
    up: tuple[float, float, float]
    distance: float

    @property
    def label(self) -> str:
        suffix = GLOBAL_SUFFIX if self.regime == DistanceRegime.standard else DETAIL_SUFFIX
        return f"{self.name} ({suffix})"

    def position(self, center: np.ndarray) -> np.ndarray:
        return np.asarray(center, dtype=float) + np.array(self.direction) * self.distance

    def up_vector(self) -> np.ndarray:
        return np.array(self.up, dtype=float)


ViewSet = tuple[CapturePose, ...]


def _block(
    table: Sequence[Orientation],
    regime: DistanceRegime,
    distance: float,
) -> list[CapturePose]:
    return [
        CapturePose(
            name=o.name,
            regime=regime,
            direction=o.direction,
            up=o.up,
            distance=distance,
        )
        for o in table
    ]


def generate_view_set(
    fit: float,
    table: Sequence[Orientation] | None = None,
    standard_margin: float = STANDARD_MARGIN,
    detail_zoom: float = DETAIL_ZOOM,
) -> ViewSet:
    """
    Expand the orientation table into the ordered capture sequence:
    every orientation at ``fit * standard_margin``, then every orientation
    again at ``fit * detail_zoom``.
    """
    table = orientation_table() if table is None else table
    return tuple(
        _block(table, DistanceRegime.standard, fit * standard_margin)
        + _block(table, DistanceRegime.detail, fit * detail_zoom)
    )
