from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .core.llm_client import LLM_NAMES


class ReconstructionJobStatus(str, Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class ReconstructionStage(str, Enum):
    """Where a reconstruction is, from the viewer's point of view."""

    idle = "idle"
    loading = "loading"
    ready = "ready"
    analyzing = "analyzing"
    complete = "complete"
    error = "error"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class ReconstructionRequest(BaseModel):
    """Input for the mesh → OpenSCAD reconstruction pipeline.

    ``mesh_path`` can be a local file path, an http(s) URL, or a CAS
    artifact reference (dict with ``uri`` / ``sha256`` / ``filename``).
    """

    mesh_path: Any
    context: str = ""
    llm_name: str | None = None  # None: use the service's default_llm
    include_frames: bool = False
    resolution: int | None = Field(default=None, ge=128, le=4096)

    request_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="after")
    def _validate(self) -> "ReconstructionRequest":
        if not self.mesh_path:
            raise ValueError("mesh_path is required")
        if self.llm_name is not None and self.llm_name not in LLM_NAMES:
            raise ValueError(f"llm_name must be one of: {', '.join(LLM_NAMES)}")
        return self


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class FrameImage(BaseModel):
    index: int
    label: str
    data_uri: str


class ReconstructionResult(BaseModel):
    success: bool = False
    session_id: str = ""
    code: str = ""
    explanation: str = ""
    modules: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)

    frames: list[FrameImage] = Field(default_factory=list)
    num_frames: int = 0
    view_labels: list[str] = Field(default_factory=list)

    capture_elapsed: float = 0.0
    inference_elapsed: float = 0.0
    llm_used: str = ""
    usage: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Job views (for /jobs endpoints)
# ---------------------------------------------------------------------------

class JobRecordView(BaseModel):
    id: str
    status: ReconstructionJobStatus
    stage: ReconstructionStage = ReconstructionStage.idle
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    progress: int = 0
    detail: str = ""

    request_summary: dict[str, Any] = Field(default_factory=dict)
    result: ReconstructionResult | None = None
    error: dict[str, Any] | None = None


class AsyncJobAccepted(BaseModel):
    job_id: str
    status: ReconstructionJobStatus = ReconstructionJobStatus.queued
    status_url: str
    result_url: str
