"""API route handlers and Pydantic response schemas."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from clipreel.db.repository import JobRepository, SqlJobRepository
from clipreel.errors import InvalidJobState, NotFound
from clipreel.orchestrator.state import is_terminal
from clipreel.schemas.job import JobRecord, SegmentRecord
from clipreel.schemas.progress import Progress
from clipreel.services.progress import PROGRESS
from clipreel.workers.tasks import compile_video_task, generate_video_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

_repository: Optional[JobRepository] = None


def get_repository() -> JobRepository:
    global _repository
    if _repository is None:
        _repository = SqlJobRepository()
    return _repository


class JobDetail(BaseModel):
    job: JobRecord
    segments: list[SegmentRecord]


class QueuedResponse(BaseModel):
    job_id: str
    task: str
    status: str = "queued"


async def _require_job(repository: JobRepository, job_id: str) -> JobRecord:
    job = await repository.load_job(job_id)
    if job is None:
        raise NotFound(f"Video project not found: {job_id}")
    return job


async def _require_open_job(repository: JobRepository, job_id: str) -> JobRecord:
    job = await _require_job(repository, job_id)
    if is_terminal(job.status):
        raise InvalidJobState(f"Video project is already {job.status.value}")
    return job


@router.post("/jobs/{job_id}/generate", status_code=202, response_model=QueuedResponse)
async def generate_video(
    job_id: str,
    background_tasks: BackgroundTasks,
    repository: JobRepository = Depends(get_repository),
):
    """Queue clip generation and compilation for a video project."""
    await _require_open_job(repository, job_id)
    background_tasks.add_task(generate_video_task, job_id, repository)
    logger.info(f"Queued video generation for {job_id}")
    return QueuedResponse(job_id=job_id, task="generate")


@router.post("/jobs/{job_id}/compile", status_code=202, response_model=QueuedResponse)
async def compile_video(
    job_id: str,
    background_tasks: BackgroundTasks,
    repository: JobRepository = Depends(get_repository),
):
    """Queue a re-compile from the clips already generated."""
    await _require_open_job(repository, job_id)
    background_tasks.add_task(compile_video_task, job_id, repository)
    logger.info(f"Queued video compilation for {job_id}")
    return QueuedResponse(job_id=job_id, task="compile")


@router.get("/jobs/{job_id}", response_model=JobDetail)
async def get_job(job_id: str, repository: JobRepository = Depends(get_repository)):
    job = await _require_job(repository, job_id)
    segments = await repository.load_segments(job_id)
    return JobDetail(job=job, segments=segments)


@router.get("/jobs/{job_id}/progress", response_model=Progress)
async def get_progress(job_id: str):
    """Latest published progress for a running (or recently finished) job."""
    progress = PROGRESS.latest(job_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"No progress recorded for {job_id}")
    return progress
