"""
Mesh to OpenSCAD reconstruction service: FastAPI entry point.

Endpoints:
  POST /run          Sync reconstruction (plain or {data, meta} envelope)
  POST /jobs         Async job submission
  GET  /jobs/{id}    Job status + reconstruction stage
  GET  /jobs/{id}/result   Final result
  DELETE /jobs/{id}  Cancel queued job
  GET  /views        The 36 positional view labels and pose metadata
  GET  /health       Service health check
  GET  /tool/schema  Tool schema for registry
  POST /upload-stl   Upload an STL file
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .core.mesh_loader import SUPPORTED_SUFFIXES
from .core.orientations import VIEW_PROTOCOL_VERSION, orientation_table
from .core.poses import generate_view_set
from .job_manager import ReconstructionJobManager
from .schemas import (
    AsyncJobAccepted,
    JobRecordView,
    ReconstructionJobStatus,
    ReconstructionRequest,
    ReconstructionResult,
)
from .shared.files import ensure_dir, safe_name
from .shared.logging import configure_logging
from .shared.payloads import unwrap_request

configure_logging(settings.log_level)
logger = logging.getLogger("meshscad.main")


# ---------------------------------------------------------------------------
# Job manager (singleton)
# ---------------------------------------------------------------------------

jobs = ReconstructionJobManager(settings)


# ---------------------------------------------------------------------------
# Auth helper
# ---------------------------------------------------------------------------

def _require_api_key(x_api_key: str | None) -> None:
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


async def _parse_request(request: Request) -> tuple[ReconstructionRequest, bool]:
    try:
        raw = await request.json()
        data, _meta, wrapped = unwrap_request(raw)
        return ReconstructionRequest.model_validate(data), wrapped
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


async def _submit_or_429(recon_request: ReconstructionRequest):
    try:
        return await jobs.submit(recon_request)
    except RuntimeError as e:
        raise HTTPException(status_code=429, detail=str(e))


async def _job_or_404(job_id: str):
    try:
        return await jobs.get(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_dir(settings.sessions_dir)
    ensure_dir(settings.uploads_dir)
    ensure_dir(settings.artifact_cache_dir)
    await jobs.startup()
    yield
    await jobs.shutdown()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Mesh to OpenSCAD Reconstruction Service",
    version="1.0.0",
    description=(
        "Takes a triangle mesh (local path, URL or CAS artifact reference), "
        "captures 36 views (18 spherical directions at a fit-to-view and a "
        "close-up distance) with an offscreen renderer, and asks a multimodal "
        "model to reconstruct parametric OpenSCAD code."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

_ACTIVE = frozenset({ReconstructionJobStatus.queued, ReconstructionJobStatus.running})


@app.get("/")
async def root():
    return {"service": settings.service_name, "view_protocol": VIEW_PROTOCOL_VERSION, "views": "/views"}


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": settings.service_name,
        "queue_size": jobs.queue.qsize(),
        "active_jobs": sum(1 for record in jobs.jobs.values() if record.status in _ACTIVE),
        "capture_in_progress": jobs.render_lock.locked(),
        "gl_platform": settings.gl_platform,
        "gemini_available": settings.gemini_available,
        "claude_available": settings.claude_available,
        "max_concurrent_jobs": settings.max_concurrent_jobs,
    }


@app.get("/tool/schema")
async def tool_schema():
    return {
        "name": "mesh-to-openscad",
        "description": (
            "Reconstructs parametric OpenSCAD code from a mesh by capturing "
            "36 multi-view renders and analysing them with a multimodal model."
        ),
        "input_schema": ReconstructionRequest.model_json_schema(),
        "output_schema": ReconstructionResult.model_json_schema(),
    }


# ---------------------------------------------------------------------------
# GET /views: positional frame labels
# ---------------------------------------------------------------------------

@app.get("/views")
async def views():
    # unit fit distance: multiply by the object's fit distance for real poses
    poses = generate_view_set(
        1.0,
        standard_margin=settings.standard_margin,
        detail_zoom=settings.detail_zoom,
    )
    return {
        "protocol": VIEW_PROTOCOL_VERSION,
        "orientations": [o.name for o in orientation_table()],
        "views": [
            {
                "index": i,
                "label": pose.label,
                "orientation": pose.name,
                "regime": pose.regime.value,
                "direction": list(pose.direction),
                "up": list(pose.up),
                "distance_factor": pose.distance,
            }
            for i, pose in enumerate(poses)
        ],
    }


# ---------------------------------------------------------------------------
# POST /run: sync endpoint
# ---------------------------------------------------------------------------

@app.post("/run")
async def run_sync(request: Request, x_api_key: str | None = Header(default=None)):
    _require_api_key(x_api_key)
    recon_request, wrapped = await _parse_request(request)

    record = await _submit_or_429(recon_request)

    try:
        finished = await jobs.wait_for_completion(record.id, timeout_seconds=settings.sync_wait_timeout_seconds)
    except RuntimeError as e:
        raise HTTPException(status_code=504, detail=str(e))

    if finished.status == ReconstructionJobStatus.succeeded and finished.result:
        result_dict = finished.result.model_dump()
        if wrapped:
            return {"result": result_dict}
        return result_dict

    if finished.status == ReconstructionJobStatus.cancelled:
        raise HTTPException(status_code=409, detail="Job cancelled")

    error = finished.error or {"message": "Unknown reconstruction error", "status_code": 500}
    raise HTTPException(
        status_code=int(error.get("status_code", 500)),
        detail=error.get("message", "Reconstruction failed"),
    )


# ---------------------------------------------------------------------------
# Async jobs
# ---------------------------------------------------------------------------

@app.post("/jobs", response_model=AsyncJobAccepted)
async def enqueue_job(request: Request, x_api_key: str | None = Header(default=None)):
    _require_api_key(x_api_key)
    recon_request, _ = await _parse_request(request)
    record = await _submit_or_429(recon_request)

    return AsyncJobAccepted(
        job_id=record.id,
        status=record.status,
        status_url=f"/jobs/{record.id}",
        result_url=f"/jobs/{record.id}/result",
    )


@app.get("/jobs/{job_id}", response_model=JobRecordView)
async def get_job(job_id: str, x_api_key: str | None = Header(default=None)):
    _require_api_key(x_api_key)
    record = await _job_or_404(job_id)
    return record.as_view()


@app.get("/jobs/{job_id}/result")
async def get_job_result(job_id: str, x_api_key: str | None = Header(default=None)):
    _require_api_key(x_api_key)
    record = await _job_or_404(job_id)

    payload = {"status": record.status.value, "stage": record.stage.value, "progress": record.progress}
    if record.status == ReconstructionJobStatus.running:
        payload["detail"] = record.detail
    elif record.status == ReconstructionJobStatus.failed:
        payload["error"] = record.error
    elif record.status == ReconstructionJobStatus.succeeded:
        payload["result"] = record.result.model_dump() if record.result else None
    return payload


@app.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, x_api_key: str | None = Header(default=None)):
    _require_api_key(x_api_key)
    try:
        record = await jobs.cancel(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"success": True, "job_id": job_id, "status": record.status}


# ---------------------------------------------------------------------------
# POST /upload-stl
# ---------------------------------------------------------------------------

@app.post("/upload-stl")
async def upload_stl(file: UploadFile = File(...), x_api_key: str | None = Header(default=None)):
    _require_api_key(x_api_key)
    if not file.filename or not file.filename.lower().endswith(SUPPORTED_SUFFIXES):
        raise HTTPException(
            status_code=400,
            detail=f"Only {', '.join(SUPPORTED_SUFFIXES)} files accepted",
        )

    upload_dir = ensure_dir(settings.uploads_dir)
    dest = upload_dir / f"{uuid.uuid4().hex}_{safe_name(file.filename, 'model.stl')}"
    with open(dest, "wb") as f:
        shutil.copyfileobj(file.file, f)

    size = dest.stat().st_size
    logger.info("Mesh uploaded: %s (%d bytes)", dest, size)
    return {"mesh_path": str(dest), "filename": file.filename, "size": size}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "meshscad.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=bool(int(os.getenv("UVICORN_RELOAD", "0"))),
    )
