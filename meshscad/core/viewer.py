"""
Live viewer state for offscreen multi-view capture.

A ``Viewer`` bundles the pieces a capture session drives:

  - ``ViewerScene``      named mesh nodes (the loaded STL is "target-mesh")
  - ``PerspectiveCamera`` mutable position / rotation / up, look-at, matrices
  - ``OrbitControls``    interactive controller with enable + auto-rotate flags
  - ``PyrenderFrameRenderer`` synchronous offscreen render + Pillow encoding

Camera convention matches pyrender / OpenGL: the camera looks down its
local -Z axis with +Y up, so ``matrix_world`` can be handed to pyrender
as a node pose unchanged.
"""

from __future__ import annotations

import io
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Iterator, Protocol

import numpy as np
import trimesh

from .errors import EncodeFailed, RenderTargetUnavailable
from .framing import BoundingBox

logger = logging.getLogger(__name__)

TARGET_MESH_NAME = "target-mesh"

DEFAULT_CAMERA_POSITION = (50.0, 50.0, 50.0)
DEFAULT_FOV = 40.0
DEFAULT_BACKGROUND = (15, 23, 42)  # #0f172a
DEFAULT_MESH_COLOR = (99, 102, 241)  # #6366f1

_PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


def _normalize(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    if n == 0.0:
        return v
    return v / n


def look_at_rotation(eye: np.ndarray, target: np.ndarray, up: np.ndarray) -> np.ndarray:
    """3x3 rotation whose -Z axis points from ``eye`` to ``target``."""
    z = np.asarray(eye, dtype=float) - np.asarray(target, dtype=float)
    if np.linalg.norm(z) == 0.0:
        z = np.array([0.0, 0.0, 1.0])
    z = _normalize(z)
    up = np.asarray(up, dtype=float)

    x = np.cross(up, z)
    if np.linalg.norm(x) == 0.0:
        # up parallel to view direction: nudge z off-axis
        if abs(up[2]) == 1.0:
            z = z + np.array([0.0001, 0.0, 0.0])
        else:
            z = z + np.array([0.0, 0.0, 0.0001])
        z = _normalize(z)
        x = np.cross(up, z)
    x = _normalize(x)
    y = np.cross(z, x)
    return np.column_stack([x, y, z])


# ---------------------------------------------------------------------------
# Scene
# ---------------------------------------------------------------------------

@dataclass
class SceneNode:
    name: str
    mesh: trimesh.Trimesh
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4))

    def world_bounds(self) -> BoundingBox:
        if self.mesh is None or len(self.mesh.vertices) == 0:
            return BoundingBox.empty()
        corners = trimesh.bounds.corners(self.mesh.bounds)
        return BoundingBox.from_points(trimesh.transform_points(corners, self.matrix))


class ViewerScene:
    def __init__(self, background: tuple[int, int, int] = DEFAULT_BACKGROUND):
        self.background = background
        self._nodes: list[SceneNode] = []
        self.version = 0

    def add_mesh(self, mesh: trimesh.Trimesh, name: str = TARGET_MESH_NAME) -> SceneNode:
        node = SceneNode(name=name, mesh=mesh)
        self._nodes.append(node)
        self.version += 1
        return node

    def meshes(self) -> Iterator[SceneNode]:
        return iter(list(self._nodes))

    def find(self, name: str) -> SceneNode | None:
        for node in self._nodes:
            if node.name == name:
                return node
        return None

    def resolve_target(self, name: str = TARGET_MESH_NAME) -> SceneNode | None:
        """Named target if present, else the last mesh added, else None."""
        node = self.find(name)
        if node is not None:
            return node
        return self._nodes[-1] if self._nodes else None


# ---------------------------------------------------------------------------
# Camera + controls
# ---------------------------------------------------------------------------

class PerspectiveCamera:
    def __init__(
        self,
        fov: float = DEFAULT_FOV,
        aspect: float = 1.0,
        near: float = 0.1,
        far: float = 5000.0,
    ):
        self.fov = fov
        self.aspect = aspect
        self.near = near
        self.far = far
        self.position = np.zeros(3)
        self.up = np.array([0.0, 1.0, 0.0])
        self.rotation = np.eye(3)
        self.matrix_world = np.eye(4)
        self.projection_matrix = np.eye(4)
        self.update_projection_matrix()
        self.update_matrix_world()

    def look_at(self, target: np.ndarray) -> None:
        self.rotation = look_at_rotation(self.position, target, self.up)

    def update_matrix_world(self) -> None:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.position
        self.matrix_world = m

    def update_projection_matrix(self) -> None:
        f = 1.0 / math.tan(math.radians(self.fov) / 2.0)
        n, fa = self.near, self.far
        p = np.zeros((4, 4))
        p[0, 0] = f / self.aspect
        p[1, 1] = f
        p[2, 2] = (fa + n) / (n - fa)
        p[2, 3] = 2.0 * fa * n / (n - fa)
        p[3, 2] = -1.0
        self.projection_matrix = p


class OrbitControls:
    """Orbit controller state. Auto-rotation advances only via ``update``."""

    def __init__(
        self,
        camera: PerspectiveCamera,
        target: np.ndarray | None = None,
        auto_rotate: bool = True,
        auto_rotate_speed: float = 1.0,
    ):
        self.camera = camera
        self.target = np.zeros(3) if target is None else np.asarray(target, dtype=float)
        self.enabled = True
        self.auto_rotate = auto_rotate
        self.auto_rotate_speed = auto_rotate_speed

    def update(self, delta: float = 0.0) -> None:
        if not self.enabled:
            return
        if self.auto_rotate and delta > 0.0:
            # one full orbit per 60 / speed seconds around world Y
            angle = 2.0 * math.pi / 60.0 * self.auto_rotate_speed * delta
            c, s = math.cos(angle), math.sin(angle)
            offset = self.camera.position - self.target
            x, z = offset[0], offset[2]
            offset = np.array([c * x + s * z, offset[1], -s * x + c * z])
            self.camera.position = self.target + offset
            self.camera.look_at(self.target)
            self.camera.update_matrix_world()


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class FrameRenderer(Protocol):
    def render(self, scene: ViewerScene, camera: PerspectiveCamera) -> None: ...

    def encode(self, mime_type: str, quality: int) -> bytes: ...


def encode_image(pixels: np.ndarray, mime_type: str = "image/jpeg", quality: int = 95) -> bytes:
    from PIL import Image

    fmt = _PIL_FORMATS.get(mime_type)
    if fmt is None:
        raise EncodeFailed(f"Unsupported image type: {mime_type}")
    try:
        image = Image.fromarray(np.asarray(pixels, dtype=np.uint8))
        if fmt == "JPEG":
            image = image.convert("RGB")
        buf = io.BytesIO()
        image.save(buf, format=fmt, quality=quality)
    except (ValueError, TypeError, OSError) as e:
        raise EncodeFailed(f"Failed to encode frame as {mime_type}: {e}") from e
    return buf.getvalue()


class PyrenderFrameRenderer:
    """Offscreen OpenGL renderer (pyrender). Headless via EGL or OSMesa."""

    def __init__(
        self,
        width: int = 1024,
        height: int = 1024,
        mesh_color: tuple[int, int, int] = DEFAULT_MESH_COLOR,
        gl_platform: str | None = None,
    ):
        self.width = width
        self.height = height
        self.mesh_color = mesh_color
        self.surface: np.ndarray | None = None
        self._gl_platform = gl_platform
        self._renderer = None
        self._pr_scene = None
        self._camera_node = None
        self._scene_version = -1

    def _ensure_renderer(self):
        if self._renderer is not None:
            return self._renderer
        if "DISPLAY" not in os.environ and "WAYLAND_DISPLAY" not in os.environ:
            os.environ.setdefault("PYOPENGL_PLATFORM", self._gl_platform or "egl")
        try:
            import pyrender

            self._renderer = pyrender.OffscreenRenderer(self.width, self.height)
        except Exception as e:
            raise RenderTargetUnavailable(f"Cannot create offscreen renderer: {e}") from e
        return self._renderer

    def _build_scene(self, scene: ViewerScene, camera: PerspectiveCamera) -> None:
        import pyrender

        bg = [c / 255.0 for c in scene.background] + [1.0]
        pr_scene = pyrender.Scene(bg_color=bg, ambient_light=[0.6, 0.6, 0.6])

        material = pyrender.MetallicRoughnessMaterial(
            baseColorFactor=[c / 255.0 for c in self.mesh_color] + [1.0],
            metallicFactor=0.1,
            roughnessFactor=0.5,
        )
        for node in scene.meshes():
            if node.mesh is None or len(node.mesh.faces) == 0:
                continue
            pr_mesh = pyrender.Mesh.from_trimesh(node.mesh, material=material, smooth=True)
            pr_scene.add(pr_mesh, pose=node.matrix, name=node.name)

        for position, intensity in (((10.0, 20.0, 10.0), 1.2), ((-10.0, -10.0, -10.0), 0.5)):
            pose = np.eye(4)
            pose[:3, :3] = look_at_rotation(np.array(position), np.zeros(3), np.array([0.0, 1.0, 0.0]))
            pose[:3, 3] = position
            pr_scene.add(pyrender.DirectionalLight(color=[1.0, 1.0, 1.0], intensity=intensity * 3.0), pose=pose)

        cam = pyrender.PerspectiveCamera(
            yfov=math.radians(camera.fov),
            aspectRatio=camera.aspect,
            znear=camera.near,
            zfar=camera.far,
        )
        self._camera_node = pr_scene.add(cam, pose=camera.matrix_world)
        pr_scene.add(
            pyrender.DirectionalLight(color=[1.0, 1.0, 1.0], intensity=1.5),
            parent_node=self._camera_node,
        )
        self._pr_scene = pr_scene
        self._scene_version = scene.version

    def render(self, scene: ViewerScene, camera: PerspectiveCamera) -> None:
        renderer = self._ensure_renderer()
        try:
            if self._pr_scene is None or self._scene_version != scene.version:
                self._build_scene(scene, camera)
            cam = self._camera_node.camera
            cam.yfov = math.radians(camera.fov)
            cam.aspectRatio = camera.aspect
            cam.znear = camera.near
            cam.zfar = camera.far
            self._pr_scene.set_pose(self._camera_node, pose=camera.matrix_world)
            color, _ = renderer.render(self._pr_scene)
        except RenderTargetUnavailable:
            raise
        except Exception as e:
            raise RenderTargetUnavailable(f"Offscreen render failed: {e}") from e
        self.surface = np.array(color, copy=True)

    def encode(self, mime_type: str = "image/jpeg", quality: int = 95) -> bytes:
        if self.surface is None:
            raise RenderTargetUnavailable("Nothing has been rendered yet")
        return encode_image(self.surface, mime_type, quality)

    def close(self) -> None:
        if self._renderer is not None:
            self._renderer.delete()
            self._renderer = None
        self._pr_scene = None
        self._camera_node = None


# ---------------------------------------------------------------------------
# Viewer
# ---------------------------------------------------------------------------

class Viewer:
    def __init__(
        self,
        scene: ViewerScene,
        camera: PerspectiveCamera,
        renderer: FrameRenderer,
        controls: OrbitControls | None = None,
    ):
        self.scene = scene
        self.camera = camera
        self.renderer = renderer
        self.controls = controls
        self.render_count = 0

    def render(self) -> None:
        self.renderer.render(self.scene, self.camera)
        self.render_count += 1

    def encode(self, mime_type: str = "image/jpeg", quality: int = 95) -> bytes:
        return self.renderer.encode(mime_type, quality)

    def close(self) -> None:
        close = getattr(self.renderer, "close", None)
        if close is not None:
            close()


def build_viewer(
    mesh: trimesh.Trimesh | None,
    renderer: FrameRenderer | None = None,
    width: int = 1024,
    height: int = 1024,
    fov: float = DEFAULT_FOV,
    gl_platform: str | None = None,
) -> Viewer:
    """Set up the scene the way the interactive viewer starts out."""
    scene = ViewerScene()
    if mesh is not None:
        scene.add_mesh(mesh, name=TARGET_MESH_NAME)

    camera = PerspectiveCamera(fov=fov, aspect=width / height)
    camera.position = np.array(DEFAULT_CAMERA_POSITION, dtype=float)
    controls = OrbitControls(camera, auto_rotate=True, auto_rotate_speed=1.0)
    camera.look_at(controls.target)
    camera.update_matrix_world()

    if renderer is None:
        renderer = PyrenderFrameRenderer(width=width, height=height, gl_platform=gl_platform)

    return Viewer(scene=scene, camera=camera, renderer=renderer, controls=controls)
