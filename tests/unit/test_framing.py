"""Tests for bounding boxes and the fit-distance calculation."""

import math
import unittest

import numpy as np

from meshscad.core.framing import DEFAULT_DISTANCE, BoundingBox, fit_distance


class TestBoundingBox(unittest.TestCase):
    def test_center_and_size(self):
        bbox = BoundingBox.from_bounds([[-1.0, 0.0, 2.0], [3.0, 4.0, 2.5]])
        np.testing.assert_allclose(bbox.center, [1.0, 2.0, 2.25])
        np.testing.assert_allclose(bbox.size, [4.0, 4.0, 0.5])
        self.assertAlmostEqual(bbox.max_dimension, 4.0)
        self.assertFalse(bbox.is_degenerate)

    def test_empty_box(self):
        bbox = BoundingBox.empty()
        self.assertTrue(bbox.is_empty)
        self.assertTrue(bbox.is_degenerate)
        np.testing.assert_array_equal(bbox.center, np.zeros(3))
        np.testing.assert_array_equal(bbox.size, np.zeros(3))

    def test_none_bounds_is_empty(self):
        self.assertTrue(BoundingBox.from_bounds(None).is_empty)

    def test_zero_size_is_degenerate(self):
        bbox = BoundingBox.from_points(np.array([[1.0, 1.0, 1.0]]))
        self.assertTrue(bbox.is_degenerate)

    def test_flat_box_is_not_degenerate(self):
        bbox = BoundingBox.from_bounds([[0.0, 0.0, 0.0], [5.0, 5.0, 0.0]])
        self.assertFalse(bbox.is_degenerate)

    def test_non_finite_is_degenerate(self):
        bbox = BoundingBox(min=np.array([0.0, 0.0, 0.0]), max=np.array([np.inf, 1.0, 1.0]))
        self.assertTrue(bbox.is_degenerate)


class TestFitDistance(unittest.TestCase):
    def test_unit_cube_at_40_degrees(self):
        bbox = BoundingBox.from_bounds([[-1.0, -1.0, -1.0], [1.0, 1.0, 1.0]])
        d = fit_distance(bbox, 40.0)
        self.assertAlmostEqual(d, 1.0 / math.tan(math.radians(20.0)), places=9)
        self.assertAlmostEqual(d, 2.747, places=3)

    def test_frames_largest_dimension_at_frustum_edge(self):
        for fov in (1.0, 30.0, 40.0, 90.0, 150.0, 179.0):
            for size in ((1.0, 2.0, 3.0), (10.0, 0.1, 0.1), (0.001, 0.002, 0.0)):
                bbox = BoundingBox.from_bounds([[0.0, 0.0, 0.0], list(size)])
                d = fit_distance(bbox, fov)
                self.assertTrue(math.isfinite(d) and d > 0.0)
                # half-height of the frustum at distance d equals the radius
                half_extent = d * math.tan(math.radians(fov) / 2.0)
                self.assertAlmostEqual(half_extent, max(size) / 2.0, places=9)

    def test_degenerate_uses_default(self):
        self.assertEqual(fit_distance(BoundingBox.empty(), 40.0), DEFAULT_DISTANCE)
        point = BoundingBox.from_points(np.zeros((1, 3)))
        self.assertEqual(fit_distance(point, 40.0), DEFAULT_DISTANCE)
        self.assertEqual(fit_distance(point, 40.0, default=7.5), 7.5)

    def test_invalid_fov_rejected(self):
        bbox = BoundingBox.from_bounds([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])
        for fov in (0.0, -10.0, 180.0, 270.0):
            with self.assertRaises(ValueError):
                fit_distance(bbox, fov)


if __name__ == "__main__":
    unittest.main()
