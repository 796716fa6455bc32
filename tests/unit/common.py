"""Shared fakes for unit tests. Nothing here needs OpenGL or network."""

import numpy as np
import trimesh

from meshscad.core.viewer import encode_image


class FakeRenderer:
    """Deterministic stand-in for the offscreen renderer.

    Each render draws a tiny image whose pixels depend only on the camera
    pose, and records the pose plus the controls flags seen at that moment.
    """

    def __init__(self, fail_at=None, fail_with=None, size=(16, 16)):
        self.fail_at = fail_at
        self.fail_with = fail_with or RuntimeError("GPU lost")
        self.size = size
        self.controls = None
        self.calls = 0
        self.positions = []
        self.ups = []
        self.matrices = []
        self.clip = []
        self.controls_flags = []
        self.surface = None

    def render(self, scene, camera):
        self.calls += 1
        if self.fail_at is not None and self.calls == self.fail_at:
            raise self.fail_with
        self.positions.append(np.array(camera.position, copy=True))
        self.ups.append(np.array(camera.up, copy=True))
        self.matrices.append(np.array(camera.matrix_world, copy=True))
        self.clip.append((camera.near, camera.far))
        if self.controls is not None:
            self.controls_flags.append((self.controls.enabled, self.controls.auto_rotate))
        seed = np.round(camera.matrix_world, 6).tobytes()
        value = sum(seed) % 256
        self.surface = np.full((self.size[1], self.size[0], 3), value, dtype=np.uint8)

    def encode(self, mime_type, quality):
        return encode_image(self.surface, mime_type, quality)


def make_box(extents=(2.0, 2.0, 2.0), center=(0.0, 0.0, 0.0)):
    box = trimesh.creation.box(extents=extents)
    box.apply_translation(center)
    return box
