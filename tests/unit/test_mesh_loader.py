"""Tests for loading and orienting meshes."""

import tempfile
import unittest
from pathlib import Path

import numpy as np
import trimesh

from meshscad.core.errors import MeshNotReady
from meshscad.core.mesh_loader import load_mesh, prepare_mesh
from tests.unit.common import make_box


class TestPrepareMesh(unittest.TestCase):
    def test_z_up_becomes_y_up_and_centered(self):
        box = make_box(extents=(10.0, 20.0, 30.0), center=(5.0, 5.0, 5.0))
        prepared = prepare_mesh(box)

        np.testing.assert_allclose(prepared.extents, [10.0, 30.0, 20.0], atol=1e-9)
        lo, hi = prepared.bounds
        np.testing.assert_allclose((lo + hi) / 2.0, np.zeros(3), atol=1e-9)

    def test_input_is_not_modified(self):
        box = make_box(extents=(10.0, 20.0, 30.0), center=(5.0, 5.0, 5.0))
        vertices = box.vertices.copy()
        prepare_mesh(box)
        np.testing.assert_array_equal(box.vertices, vertices)

    def test_keep_orientation(self):
        prepared = prepare_mesh(make_box(extents=(10.0, 20.0, 30.0)), z_up=False)
        np.testing.assert_allclose(prepared.extents, [10.0, 20.0, 30.0], atol=1e-9)

    def test_empty_mesh_rejected(self):
        with self.assertRaises(MeshNotReady):
            prepare_mesh(trimesh.Trimesh())


class TestLoadMesh(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_load_stl(self):
        path = self.tmp / "part.stl"
        make_box(extents=(10.0, 20.0, 30.0)).export(str(path))

        mesh = load_mesh(path)
        self.assertIsInstance(mesh, trimesh.Trimesh)
        self.assertEqual(len(mesh.faces), 12)
        np.testing.assert_allclose(mesh.extents, [10.0, 30.0, 20.0], atol=1e-5)

    def test_missing_file(self):
        with self.assertRaises(MeshNotReady) as ctx:
            load_mesh(self.tmp / "nope.stl")
        self.assertEqual(ctx.exception.status_code, 422)

    def test_unsupported_suffix(self):
        path = self.tmp / "notes.txt"
        path.write_text("solid nothing")
        with self.assertRaises(MeshNotReady):
            load_mesh(path)


if __name__ == "__main__":
    unittest.main()
