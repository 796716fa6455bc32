from __future__ import annotations

import re
from pathlib import Path

from ..core.capture import CapturedFrame

_SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]+")

_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_name(name: str, fallback: str = "file") -> str:
    value = _SAFE_NAME_RE.sub("_", (name or "").strip()).strip("._")
    return value or fallback


def frame_filename(frame: CapturedFrame) -> str:
    """``03_Front_Global.jpg``: sortable, positional, filesystem-safe."""
    ext = _EXTENSIONS.get(frame.mime_type, "bin")
    return f"{frame.index + 1:02d}_{safe_name(frame.label, 'view')}.{ext}"


def write_frames(frames: list[CapturedFrame], output_dir: Path) -> list[Path]:
    ensure_dir(output_dir)
    paths: list[Path] = []
    for frame in frames:
        path = output_dir / frame_filename(frame)
        path.write_bytes(frame.data)
        paths.append(path)
    return paths
