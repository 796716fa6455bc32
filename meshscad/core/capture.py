"""
Multi-view capture session.

Drives a live viewer through the 36-pose view set and returns the encoded
frames in pose order. The viewer's camera and controls are left exactly as
they were found, whether the capture succeeds or fails:

  1. resolve target mesh and compute its world bounding box
  2. snapshot camera position / rotation / up / clip planes (value copies)
     + controls flags
  3. disable controls and auto-rotate, fit near/far to the pose distances
  4. per pose: place camera, look at center, update matrices, settle,
     render, encode
  5. finally: restore snapshot, re-enable controls, render once more
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple

import numpy as np

from .errors import CaptureError, EncodeFailed, RenderTargetUnavailable
from .framing import BoundingBox, fit_distance
from .poses import DETAIL_ZOOM, STANDARD_MARGIN, CapturePose, ViewSet, generate_view_set
from .viewer import TARGET_MESH_NAME, Viewer

logger = logging.getLogger(__name__)

CaptureCallback = Callable[[], Awaitable[list["CapturedFrame"]]]

# near plane as a fraction of the closest camera distance
NEAR_FRACTION = 0.01
FAR_MARGIN = 2.0


@dataclass(frozen=True)
class CapturedFrame:
    index: int
    label: str
    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"


@dataclass(frozen=True)
class CameraSnapshot:
    position: np.ndarray
    rotation: np.ndarray
    up: np.ndarray
    near: float = 0.1
    far: float = 5000.0
    controls_enabled: bool | None = None
    controls_auto_rotate: bool | None = None

    @classmethod
    def take(cls, viewer: Viewer) -> "CameraSnapshot":
        camera = viewer.camera
        controls = viewer.controls
        return cls(
            position=np.array(camera.position, dtype=float, copy=True),
            rotation=np.array(camera.rotation, dtype=float, copy=True),
            up=np.array(camera.up, dtype=float, copy=True),
            near=camera.near,
            far=camera.far,
            controls_enabled=controls.enabled if controls is not None else None,
            controls_auto_rotate=controls.auto_rotate if controls is not None else None,
        )

    def restore(self, viewer: Viewer) -> None:
        camera = viewer.camera
        camera.up = self.up.copy()
        camera.position = self.position.copy()
        camera.rotation = self.rotation.copy()
        camera.near = self.near
        camera.far = self.far
        camera.update_matrix_world()
        camera.update_projection_matrix()

        controls = viewer.controls
        if controls is not None:
            controls.enabled = bool(self.controls_enabled)
            controls.auto_rotate = bool(self.controls_auto_rotate)


class CapturePlan(NamedTuple):
    center: np.ndarray
    views: ViewSet
    near: float
    far: float


def clip_planes(views: ViewSet, bbox: BoundingBox) -> tuple[float, float]:
    """Near/far planes that keep the whole box inside the frustum at every pose."""
    radius = 0.0 if bbox.is_degenerate else float(np.linalg.norm(bbox.size)) / 2.0
    closest = min(pose.distance for pose in views)
    farthest = max(pose.distance for pose in views)
    return closest * NEAR_FRACTION, (farthest + radius) * FAR_MARGIN


class CaptureSession:
    def __init__(
        self,
        viewer: Viewer,
        settle_delay: float = 0.2,
        mime_type: str = "image/jpeg",
        quality: int = 95,
        standard_margin: float = STANDARD_MARGIN,
        detail_zoom: float = DETAIL_ZOOM,
        target_name: str = TARGET_MESH_NAME,
    ):
        self.viewer = viewer
        self.settle_delay = settle_delay
        self.mime_type = mime_type
        self.quality = quality
        self.standard_margin = standard_margin
        self.detail_zoom = detail_zoom
        self.target_name = target_name
        self.capturing = False

    def resolve_bounds(self) -> BoundingBox:
        node = self.viewer.scene.resolve_target(self.target_name)
        if node is None:
            logger.warning("No renderable mesh in scene, capturing empty scene")
            return BoundingBox.empty()
        if node.name != self.target_name:
            logger.info("Target '%s' not found, falling back to '%s'", self.target_name, node.name)
        return node.world_bounds()

    def plan(self) -> CapturePlan:
        """Center, ordered poses and clip planes for the scene as it is right now."""
        bbox = self.resolve_bounds()
        fit = fit_distance(bbox, self.viewer.camera.fov)
        center = bbox.center if not bbox.is_degenerate else np.zeros(3)
        views = generate_view_set(
            fit,
            standard_margin=self.standard_margin,
            detail_zoom=self.detail_zoom,
        )
        near, far = clip_planes(views, bbox)
        logger.info(
            "Capture plan: center=%s max_dim=%.4f fit=%.4f near=%.4g far=%.4g poses=%d",
            np.round(center, 4).tolist(), bbox.max_dimension, fit, near, far, len(views),
        )
        return CapturePlan(center, views, near, far)

    def _apply_clip_planes(self, plan: CapturePlan) -> None:
        camera = self.viewer.camera
        camera.near = plan.near
        camera.far = plan.far
        camera.update_projection_matrix()

    def _suspend_controls(self) -> None:
        controls = self.viewer.controls
        if controls is not None:
            controls.enabled = False
            controls.auto_rotate = False

    async def _capture_pose(self, index: int, pose: CapturePose, center: np.ndarray) -> CapturedFrame:
        camera = self.viewer.camera
        camera.position = pose.position(center)
        camera.up = pose.up_vector()
        camera.look_at(center)
        camera.update_matrix_world()
        camera.update_projection_matrix()

        await asyncio.sleep(self.settle_delay)

        try:
            self.viewer.render()
        except CaptureError:
            raise
        except Exception as e:
            raise RenderTargetUnavailable(f"Render failed at pose {index + 1} ({pose.label}): {e}") from e

        try:
            data = self.viewer.encode(self.mime_type, self.quality)
        except CaptureError:
            raise
        except Exception as e:
            raise EncodeFailed(f"Encoding failed at pose {index + 1} ({pose.label}): {e}") from e

        logger.debug("Captured pose %d %s (%d bytes)", index + 1, pose.label, len(data))
        return CapturedFrame(index=index, label=pose.label, data=data, mime_type=self.mime_type)

    async def capture(self) -> list[CapturedFrame]:
        if self.capturing:
            raise CaptureError("A capture is already running on this viewer")

        plan = self.plan()
        center, views = plan.center, plan.views
        snapshot = CameraSnapshot.take(self.viewer)
        self.capturing = True
        self._suspend_controls()
        self._apply_clip_planes(plan)

        t0 = time.time()
        frames: list[CapturedFrame] = []
        failed = True
        try:
            for index, pose in enumerate(views):
                frames.append(await self._capture_pose(index, pose, center))
            failed = False
        finally:
            snapshot.restore(self.viewer)
            self.capturing = False
            logger.info("Viewer state restored after capture (%d/%d frames)", len(frames), len(views))
            try:
                self.viewer.render()
            except Exception:
                if not failed:
                    raise
                # keep the original capture error
                logger.exception("Final render after failed capture also failed")

        logger.info("Captured %d frames in %.2fs", len(frames), time.time() - t0)
        return frames


def setup_capture(viewer: Viewer, **session_options) -> CaptureCallback:
    """Bind a capture session to ``viewer`` and hand back its capture operation."""
    session = CaptureSession(viewer, **session_options)
    return session.capture
