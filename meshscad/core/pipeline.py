"""
Reconstruction pipeline: orchestrates the full flow:

  1. Resolve the mesh reference and load it (oriented + centered)
  2. Set up an offscreen viewer and take its capture callback
  3. Capture the 36 views (serialised across jobs by ``render_lock``)
  4. Downscale/recompress the frames
  5. Ask the model for OpenSCAD code + explanation
  6. Persist frames and session.json, return a structured result
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import time
import uuid
from contextlib import nullcontext
from datetime import datetime
from pathlib import Path
from typing import Callable

from ..config import ReconstructionSettings
from ..schemas import FrameImage, ReconstructionRequest, ReconstructionResult, ReconstructionStage
from ..shared.artifact_resolver import mesh_display_name, resolve_mesh_path
from ..shared.files import ensure_dir, write_frames
from .capture import setup_capture
from .code_processor import extract_functions, extract_modules
from .imaging import optimize_frames
from .llm_client import generate_scad
from .mesh_loader import load_mesh
from .orientations import VIEW_LABELS, VIEW_PROTOCOL_VERSION
from .prompt_builder import SYSTEM_INSTRUCTION, build_reconstruction_prompt
from .viewer import build_viewer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ReconstructionStage, int, str], None]


async def reconstruct(
    request: ReconstructionRequest,
    settings: ReconstructionSettings,
    render_lock: asyncio.Lock | None = None,
    progress_callback: ProgressCallback | None = None,
) -> ReconstructionResult:
    """End-to-end reconstruction: mesh → 36 views → model → OpenSCAD."""

    def _progress(stage: ReconstructionStage, pct: int, detail: str) -> None:
        if progress_callback:
            progress_callback(stage, pct, detail)

    llm_name = request.llm_name or settings.default_llm
    session_id = request.request_id or f"r_{uuid.uuid4().hex[:10]}_{int(time.time())}"
    session_dir = ensure_dir(settings.sessions_dir / session_id)

    # Step 1: mesh
    _progress(ReconstructionStage.loading, 5, "Resolving mesh artifact...")
    mesh_path = await resolve_mesh_path(request.mesh_path, cache_dir=settings.artifact_cache_dir)
    filename = mesh_display_name(request.mesh_path) or mesh_path.name

    _progress(ReconstructionStage.loading, 10, f"Loading {filename}...")
    loop = asyncio.get_running_loop()
    mesh = await loop.run_in_executor(None, load_mesh, mesh_path)

    # Step 2: viewer + capture callback, wired once at scene setup
    resolution = request.resolution
    viewer = build_viewer(
        mesh,
        width=resolution or settings.render_width,
        height=resolution or settings.render_height,
        fov=settings.camera_fov,
        gl_platform=settings.gl_platform,
    )
    capture = setup_capture(
        viewer,
        settle_delay=settings.settle_delay_seconds,
        quality=settings.capture_quality,
        standard_margin=settings.standard_margin,
        detail_zoom=settings.detail_zoom,
    )
    _progress(ReconstructionStage.ready, 20, "Viewer ready")

    # Step 3: capture
    _progress(ReconstructionStage.analyzing, 25, f"Capturing {len(VIEW_LABELS)} views...")
    t0 = time.time()
    try:
        async with render_lock if render_lock is not None else nullcontext():
            frames = await capture()
    finally:
        viewer.close()
    capture_elapsed = time.time() - t0
    logger.info("[CAPTURE] %d frames in %.1fs", len(frames), capture_elapsed)

    # Step 4: optimise
    _progress(ReconstructionStage.analyzing, 50, f"Optimizing {len(frames)} frames...")
    optimized = await loop.run_in_executor(
        None,
        functools.partial(
            optimize_frames,
            frames,
            max_dim=settings.optimize_max_dim,
            quality=settings.optimize_quality,
        ),
    )
    await loop.run_in_executor(None, write_frames, optimized, session_dir / "frames")

    # Step 5: inference
    _progress(ReconstructionStage.analyzing, 60, f"Calling {llm_name} for OpenSCAD code...")
    prompt = build_reconstruction_prompt(
        context=request.context,
        filename=filename,
        language=settings.explanation_language,
    )
    inference = await generate_scad(
        llm_name,
        SYSTEM_INSTRUCTION,
        prompt,
        optimized,
        anthropic_api_key=settings.anthropic_api_key,
        gemini_api_key=settings.gemini_api_key,
        gemini_model=settings.gemini_model,
    )
    modules = extract_modules(inference.code)
    functions = extract_functions(inference.code)

    # Step 6: persist
    (session_dir / "model.scad").write_text(inference.code)
    session_data = {
        "session_id": session_id,
        "mesh": str(mesh_path),
        "filename": filename,
        "context": request.context,
        "llm_name": llm_name,
        "view_protocol": VIEW_PROTOCOL_VERSION,
        "view_labels": list(VIEW_LABELS),
        "code": inference.code,
        "explanation": inference.explanation,
        "modules": modules,
        "functions": functions,
        "usage": inference.usage.to_dict(),
        "capture_elapsed": round(capture_elapsed, 2),
        "inference_elapsed": round(inference.elapsed_seconds, 2),
        "created": datetime.now().isoformat(),
    }
    (session_dir / "session.json").write_text(json.dumps(session_data, indent=2))

    _progress(ReconstructionStage.complete, 100, "Reconstruction complete")
    logger.info(
        "=== RECONSTRUCT COMPLETE: %s | modules=%s | cost=$%.4f ===",
        session_id, modules, inference.usage.cost_usd,
    )

    return ReconstructionResult(
        success=True,
        session_id=session_id,
        code=inference.code,
        explanation=inference.explanation,
        modules=modules,
        functions=functions,
        frames=[
            FrameImage(index=f.index, label=f.label, data_uri=f.data_uri) for f in optimized
        ] if request.include_frames else [],
        num_frames=len(frames),
        view_labels=list(VIEW_LABELS),
        capture_elapsed=round(capture_elapsed, 2),
        inference_elapsed=round(inference.elapsed_seconds, 2),
        llm_used=llm_name,
        usage=inference.usage.to_dict(),
    )
