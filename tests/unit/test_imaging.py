"""Tests for frame downscaling before upload."""

import io
import unittest

import numpy as np
from PIL import Image

from meshscad.core.capture import CapturedFrame
from meshscad.core.errors import EncodeFailed
from meshscad.core.imaging import BACKGROUND, optimize_frame, optimize_frames
from meshscad.core.viewer import encode_image


def _frame(width, height, mime_type="image/png", pixels=None, index=0):
    if pixels is None:
        pixels = np.full((height, width, 3), 200, dtype=np.uint8)
    data = encode_image(pixels, mime_type, 95)
    return CapturedFrame(index=index, label="Top (Global)", data=data, mime_type=mime_type)


class TestOptimizeFrame(unittest.TestCase):
    def test_downscales_keeping_aspect(self):
        out = optimize_frame(_frame(1600, 1200), max_dim=800, quality=80)
        with Image.open(io.BytesIO(out.data)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (800, 600))
        self.assertEqual(out.mime_type, "image/jpeg")
        self.assertEqual(out.label, "Top (Global)")

    def test_small_frames_keep_size(self):
        out = optimize_frame(_frame(64, 32), max_dim=800)
        with Image.open(io.BytesIO(out.data)) as img:
            self.assertEqual(img.size, (64, 32))

    def test_alpha_flattened_onto_background(self):
        pixels = np.zeros((10, 10, 4), dtype=np.uint8)
        out = optimize_frame(_frame(10, 10, pixels=pixels))
        with Image.open(io.BytesIO(out.data)) as img:
            r, g, b = img.convert("RGB").getpixel((5, 5))
        for got, want in zip((r, g, b), BACKGROUND):
            self.assertLess(abs(got - want), 6)

    def test_garbage_data(self):
        frame = CapturedFrame(index=3, label="Back (Global)", data=b"not an image")
        with self.assertRaises(EncodeFailed):
            optimize_frame(frame)

    def test_batch_preserves_order(self):
        frames = [_frame(20, 20, index=i) for i in range(3)]
        out = optimize_frames(frames)
        self.assertEqual([f.index for f in out], [0, 1, 2])


if __name__ == "__main__":
    unittest.main()
