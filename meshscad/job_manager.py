"""
Async job manager for the reconstruction pipeline.

Provides:
  - Bounded work queue with configurable concurrency
  - Per-job progress / stage tracking (compatible with polling clients)
  - One render lock so offscreen captures never overlap
  - TTL-based cleanup of completed job records
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .config import ReconstructionSettings
from .core.pipeline import ProgressCallback, reconstruct
from .schemas import (
    JobRecordView,
    ReconstructionJobStatus,
    ReconstructionRequest,
    ReconstructionResult,
    ReconstructionStage,
)

logger = logging.getLogger(__name__)

_FINISHED = frozenset({
    ReconstructionJobStatus.succeeded,
    ReconstructionJobStatus.failed,
    ReconstructionJobStatus.cancelled,
})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def error_payload(exc: BaseException) -> dict[str, Any]:
    return {
        "message": str(exc) or exc.__class__.__name__,
        "status_code": int(getattr(exc, "status_code", 500)),
        "kind": getattr(exc, "kind", exc.__class__.__name__),
    }


@dataclass
class JobRecord:
    id: str
    request: ReconstructionRequest
    status: ReconstructionJobStatus
    created_at: datetime
    stage: ReconstructionStage = ReconstructionStage.idle
    started_at: datetime | None = None
    finished_at: datetime | None = None
    progress: int = 0
    detail: str = ""
    result: ReconstructionResult | None = None
    error: dict[str, Any] | None = None
    done_event: asyncio.Event = field(default_factory=asyncio.Event)

    def as_view(self) -> JobRecordView:
        return JobRecordView(
            id=self.id,
            status=self.status,
            stage=self.stage,
            created_at=self.created_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
            progress=self.progress,
            detail=self.detail,
            request_summary={
                "mesh_path": str(self.request.mesh_path)[:120],
                "llm_name": self.request.llm_name,
                "context": self.request.context[:120],
            },
            result=self.result,
            error=self.error,
        )


class ReconstructionJobManager:
    def __init__(self, settings: ReconstructionSettings):
        self.settings = settings
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=settings.max_queue_size)
        self.jobs: dict[str, JobRecord] = {}
        self.render_lock = asyncio.Lock()
        self._workers: list[asyncio.Task] = []
        self._cleanup_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    async def startup(self) -> None:
        worker_count = self.settings.max_concurrent_jobs
        for idx in range(worker_count):
            self._workers.append(
                asyncio.create_task(self._worker_loop(idx), name=f"reconstruct-worker-{idx}")
            )
        self._cleanup_task = asyncio.create_task(self._cleanup_loop(), name="reconstruct-cleanup")
        logger.info("reconstruction_job_manager_started workers=%s", worker_count)

    async def shutdown(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        if self._cleanup_task:
            self._cleanup_task.cancel()
            await asyncio.gather(self._cleanup_task, return_exceptions=True)
            self._cleanup_task = None

    async def submit(self, request: ReconstructionRequest, job_id: str | None = None) -> JobRecord:
        async with self._lock:
            if self.queue.full():
                raise RuntimeError("Job queue is full, retry later")

            _id = job_id or request.request_id or str(uuid.uuid4())
            if _id in self.jobs:
                raise RuntimeError(f"Duplicate job_id: {_id}")

            if request.llm_name is None:
                request = request.model_copy(update={"llm_name": self.settings.default_llm})

            record = JobRecord(
                id=_id,
                request=request,
                status=ReconstructionJobStatus.queued,
                created_at=_utc_now(),
            )
            self.jobs[_id] = record
            self.queue.put_nowait(_id)
            return record

    async def wait_for_completion(self, job_id: str, timeout_seconds: int) -> JobRecord:
        record = await self.get(job_id)
        try:
            await asyncio.wait_for(record.done_event.wait(), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            raise RuntimeError(f"Job '{job_id}' did not finish within {timeout_seconds}s")
        return await self.get(job_id)

    async def get(self, job_id: str) -> JobRecord:
        record = self.jobs.get(job_id)
        if not record:
            raise KeyError(f"Job not found: {job_id}")
        return record

    async def cancel(self, job_id: str) -> JobRecord:
        record = await self.get(job_id)
        if record.status == ReconstructionJobStatus.queued:
            record.status = ReconstructionJobStatus.cancelled
            record.finished_at = _utc_now()
            record.done_event.set()
            return record
        if record.status in _FINISHED:
            return record
        raise RuntimeError("Running jobs cannot be cancelled mid-capture")

    def _make_progress_callback(self, record: JobRecord) -> ProgressCallback:
        def _cb(stage: ReconstructionStage, pct: int, detail: str) -> None:
            record.stage = stage
            record.progress = pct
            record.detail = detail
        return _cb

    async def _run_job(self, idx: int, record: JobRecord) -> None:
        record.status = ReconstructionJobStatus.running
        record.started_at = _utc_now()
        record.stage = ReconstructionStage.loading
        record.progress = 1
        record.detail = "Starting reconstruction..."

        try:
            result = await reconstruct(
                record.request,
                self.settings,
                render_lock=self.render_lock,
                progress_callback=self._make_progress_callback(record),
            )
            record.result = result
            record.status = ReconstructionJobStatus.succeeded
            record.stage = ReconstructionStage.complete
            record.progress = 100
            record.detail = f"Generated {len(result.code)} chars of OpenSCAD from {result.num_frames} views"

        except Exception as exc:
            record.status = ReconstructionJobStatus.failed
            record.stage = ReconstructionStage.error
            record.error = error_payload(exc)
            record.progress = 100
            record.detail = f"Error: {str(exc)[:200]}"
            logger.exception("Worker %d: job %s failed", idx, record.id)

        finally:
            record.finished_at = _utc_now()
            record.done_event.set()

    async def _worker_loop(self, idx: int) -> None:
        while True:
            job_id = await self.queue.get()
            try:
                record = self.jobs.get(job_id)
                if not record or record.status == ReconstructionJobStatus.cancelled:
                    continue
                await self._run_job(idx, record)
            finally:
                self.queue.task_done()

    def prune(self) -> int:
        now = _utc_now()
        ttl = timedelta(seconds=self.settings.finished_job_ttl_seconds)

        expired = [
            jid
            for jid, job in self.jobs.items()
            if job.status in _FINISHED and job.finished_at and now - job.finished_at > ttl
        ]
        for jid in expired:
            self.jobs.pop(jid, None)

        completed_ids = [jid for jid, job in self.jobs.items() if job.status in _FINISHED]
        overflow = max(0, len(completed_ids) - self.settings.max_job_records)
        if overflow > 0:
            completed_sorted = sorted(
                completed_ids,
                key=lambda i: self.jobs[i].finished_at or self.jobs[i].created_at,
            )
            for jid in completed_sorted[:overflow]:
                self.jobs.pop(jid, None)
        return len(expired) + overflow

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.cleanup_interval_seconds)
            removed = self.prune()
            if removed:
                logger.debug("Pruned %d finished job records", removed)
