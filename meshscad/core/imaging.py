"""Downscale + recompress captured frames before sending a batch upstream."""

from __future__ import annotations

import io
import logging

from PIL import Image

from .capture import CapturedFrame
from .errors import EncodeFailed

logger = logging.getLogger(__name__)

BACKGROUND = (15, 23, 42)


def optimize_frame(frame: CapturedFrame, max_dim: int = 800, quality: int = 80) -> CapturedFrame:
    """Fit ``frame`` inside ``max_dim`` x ``max_dim`` and re-encode as JPEG."""
    try:
        with Image.open(io.BytesIO(frame.data)) as img:
            img.load()
            width, height = img.size
            scale = min(1.0, max_dim / max(width, height))
            size = (max(1, round(width * scale)), max(1, round(height * scale)))
            if size != img.size:
                img = img.resize(size, Image.Resampling.LANCZOS)

            # flatten any alpha onto the scene background
            canvas = Image.new("RGB", img.size, BACKGROUND)
            if img.mode in ("RGBA", "LA"):
                canvas.paste(img, mask=img.getchannel("A"))
            else:
                canvas.paste(img.convert("RGB"))

            buf = io.BytesIO()
            canvas.save(buf, format="JPEG", quality=quality)
    except (OSError, ValueError) as e:
        raise EncodeFailed(f"Failed to optimize frame {frame.index} ({frame.label}): {e}") from e

    return CapturedFrame(index=frame.index, label=frame.label, data=buf.getvalue(), mime_type="image/jpeg")


def optimize_frames(frames: list[CapturedFrame], max_dim: int = 800, quality: int = 80) -> list[CapturedFrame]:
    optimized = [optimize_frame(f, max_dim=max_dim, quality=quality) for f in frames]
    before = sum(len(f.data) for f in frames)
    after = sum(len(f.data) for f in optimized)
    logger.info("Optimized %d frames: %d -> %d bytes", len(frames), before, after)
    return optimized
