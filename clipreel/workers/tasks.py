"""Background task entry points for the external scheduler.

Each task accepts a job id, wires the default collaborators and returns a
plain dict the scheduler can record: ``{"success": True, ...}`` or
``{"success": False, "error": ...}``. Progress is published on the shared
board in clipreel.services.progress.
"""

import logging
from typing import Optional

from clipreel.db.repository import JobRepository, SqlJobRepository
from clipreel.errors import InvalidJobState, NotFound
from clipreel.orchestrator.pipeline import VideoJobOrchestrator
from clipreel.pipeline.compiler import VideoCompiler
from clipreel.schemas.job import JobStatus
from clipreel.schemas.progress import Progress, ProgressStep
from clipreel.services.generation import (
    GenerationServiceClient,
    RemoteSegmentGenerator,
    RemoteTransitionGenerator,
)
from clipreel.services.progress import PROGRESS, ProgressPublisher
from clipreel.services.storage import HttpStorageClient

logger = logging.getLogger(__name__)


def build_compiler(repository: JobRepository) -> VideoCompiler:
    return VideoCompiler(repository, HttpStorageClient())


async def generate_video_task(job_id: str, repository: Optional[JobRepository] = None) -> dict:
    """Run the whole generate-then-compile workflow for a job."""
    repository = repository or SqlJobRepository()
    client = GenerationServiceClient()
    orchestrator = VideoJobOrchestrator(
        repository,
        generator=RemoteSegmentGenerator(repository, client),
        compiler=build_compiler(repository),
        transition_generator=RemoteTransitionGenerator(repository, client),
    )

    try:
        summary = await orchestrator.run(job_id)
    except Exception as e:
        logger.error(f"Video generation task failed for {job_id}: {e}", exc_info=True)
        return {"success": False, "video_project_id": job_id, "error": str(e)}
    finally:
        await client.close()

    return {"success": True, "video_project_id": job_id, **summary.model_dump()}


async def compile_video_task(
    job_id: str,
    repository: Optional[JobRepository] = None,
    compiler: Optional[VideoCompiler] = None,
    progress: Optional[ProgressPublisher] = None,
) -> dict:
    """Re-run only the compile step for a job whose clips already exist.

    A job that is missing or not compilable in its current status is
    reported without touching its record.
    """
    repository = repository or SqlJobRepository()
    compiler = compiler or build_compiler(repository)
    progress = progress or PROGRESS

    try:
        result = await compiler.run(job_id)
    except Exception as e:
        reason = str(e) or type(e).__name__
        logger.error(f"Video compilation task failed for {job_id}: {reason}", exc_info=True)
        progress.publish(
            job_id,
            Progress(step=ProgressStep.FAILED, label=f"Compilation failed: {reason}", percent_complete=0),
        )
        if not isinstance(e, (NotFound, InvalidJobState)):
            try:
                await repository.update_job(job_id, status=JobStatus.FAILED, error_message=reason)
            except Exception as db_err:
                logger.error(f"Failed to mark video project {job_id} as failed: {db_err}")
        return {"success": False, "video_project_id": job_id, "error": reason}

    progress.publish(
        job_id, Progress(step=ProgressStep.COMPLETED, label="Complete", percent_complete=100)
    )
    return {"success": True, "video_project_id": job_id, **result.model_dump()}
