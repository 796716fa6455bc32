"""
Mesh provider: load an STL and put it in the viewer frame.

Engineering models are Z-up with -Y as front. The viewer is Y-up with +Z
as front, so meshes are rotated -90 degrees about X and then centered on
the origin so the orbit pivot sits inside the object.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

import numpy as np
import trimesh

from .errors import MeshNotReady

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".stl", ".obj", ".ply", ".glb", ".gltf", ".off")

_Z_UP_TO_Y_UP = trimesh.transformations.rotation_matrix(-math.pi / 2.0, [1.0, 0.0, 0.0])


def prepare_mesh(mesh: trimesh.Trimesh, z_up: bool = True) -> trimesh.Trimesh:
    """Copy, reorient and center ``mesh``. The input is left untouched."""
    if mesh is None or len(mesh.faces) == 0:
        raise MeshNotReady("Mesh has no triangles")

    prepared = mesh.copy()
    if z_up:
        prepared.apply_transform(_Z_UP_TO_Y_UP)

    lo, hi = prepared.bounds
    prepared.apply_translation(-(lo + hi) / 2.0)
    return prepared


def load_mesh(path: str | Path, z_up: bool = True) -> trimesh.Trimesh:
    """Load a mesh file and return it oriented and centered for capture."""
    path = Path(path)
    if not path.is_file():
        raise MeshNotReady(f"Mesh file not found: {path}")
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise MeshNotReady(f"Unsupported mesh format: {path.suffix}")

    try:
        loaded = trimesh.load(str(path), force="mesh")
    except Exception as e:
        raise MeshNotReady(f"Failed to read mesh {path.name}: {e}") from e

    if not isinstance(loaded, trimesh.Trimesh):
        raise MeshNotReady(f"No triangle mesh in {path.name}")

    mesh = prepare_mesh(loaded, z_up=z_up)
    logger.info(
        "Loaded mesh %s: %d verts, %d faces, extents=%s",
        path.name, len(mesh.vertices), len(mesh.faces), np.round(mesh.extents, 4).tolist(),
    )
    return mesh
