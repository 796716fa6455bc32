#!/usr/bin/env python3
"""
Standalone CLI: capture the 36 reconstruction views of a mesh to disk.

Usage:
  python scripts/capture_views.py /path/to/model.stl [--output-dir ./out] [--width 1024]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

SERVICE_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(SERVICE_ROOT))

from meshscad.core.capture import setup_capture
from meshscad.core.errors import CaptureError
from meshscad.core.mesh_loader import load_mesh
from meshscad.core.viewer import build_viewer
from meshscad.shared.files import write_frames
from meshscad.shared.logging import configure_logging


async def main() -> None:
    parser = argparse.ArgumentParser(description="Capture multi-view renders of a mesh")
    parser.add_argument("mesh_path", help="Path to STL (or other trimesh-readable) file")
    parser.add_argument("--output-dir", default=str(SERVICE_ROOT / "data" / "captures"),
                        help="Directory for the captured frames")
    parser.add_argument("--width", type=int, default=1024, help="Render width")
    parser.add_argument("--height", type=int, default=1024, help="Render height")
    parser.add_argument("--fov", type=float, default=40.0, help="Vertical field of view (degrees)")
    parser.add_argument("--settle-delay", type=float, default=0.0,
                        help="Seconds to wait before each render")
    parser.add_argument("--no-z-up", action="store_true",
                        help="Mesh is already Y-up; skip the Z-up rotation")
    args = parser.parse_args()

    configure_logging()

    try:
        mesh = load_mesh(args.mesh_path, z_up=not args.no_z_up)
    except CaptureError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    viewer = build_viewer(mesh, width=args.width, height=args.height, fov=args.fov)
    capture = setup_capture(viewer, settle_delay=args.settle_delay)

    print(f"Capturing views of: {args.mesh_path}")
    print(f"  Resolution: {args.width}x{args.height}, FOV {args.fov}")

    t0 = time.time()
    try:
        frames = await capture()
    except CaptureError as e:
        print(f"\nCapture failed ({e.kind}): {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        viewer.close()

    out_dir = Path(args.output_dir) / Path(args.mesh_path).stem
    paths = write_frames(frames, out_dir)
    print(f"\nSuccess: {len(frames)} frames in {time.time() - t0:.1f}s")
    for path in paths:
        print(f"  {path.name}: {path.stat().st_size} bytes")


if __name__ == "__main__":
    asyncio.run(main())
