"""Video job orchestrator: fan out clip generation, then compile.

Drives one job from draft/generating to completed or failed:
- Fan-out/fan-in barrier over every segment's generation
- Graceful degradation when only some segments fail
- Optional seamless-transition batch
- Compiler invocation and cost finalization
- Shared failure path that always re-raises the original error
"""

import asyncio
import logging
import time
from typing import Optional

from clipreel.config import settings
from clipreel.db.repository import JobRepository
from clipreel.errors import (
    AllSegmentsFailed,
    EmptyBatch,
    InvalidJobState,
    NotFound,
    OrchestratorTimeout,
)
from clipreel.orchestrator.state import is_terminal
from clipreel.pipeline.compiler import VideoCompiler
from clipreel.schemas.job import (
    JobRecord,
    JobStatus,
    JobSummary,
    SegmentOutcome,
    SegmentRecord,
    SegmentStatus,
    TransitionMode,
)
from clipreel.schemas.progress import Progress, ProgressStep
from clipreel.services.generation import SegmentGenerator, TransitionGenerator
from clipreel.services.progress import PROGRESS, ProgressPublisher

logger = logging.getLogger(__name__)


def segment_unit_cost(with_audio: bool) -> int:
    """Cost of one generated segment in cents."""
    pricing = settings.pricing
    per_second = (
        pricing.cost_per_second_with_audio if with_audio else pricing.cost_per_second_no_audio
    )
    return round(per_second * settings.pipeline.default_segment_duration * 100)


class VideoJobOrchestrator:
    """Run the full generate-then-compile workflow for a video job.

    Args:
        repository: Job/segment persistence
        generator: Per-segment generation capability
        compiler: Compiler invoked once the batch settles
        transition_generator: Optional capability for seamless transitions
        progress: Progress channel, defaults to the process-wide board
        timeout: Wall-clock ceiling for a whole run in seconds
    """

    def __init__(
        self,
        repository: JobRepository,
        generator: SegmentGenerator,
        compiler: VideoCompiler,
        transition_generator: Optional[TransitionGenerator] = None,
        progress: Optional[ProgressPublisher] = None,
        timeout: Optional[float] = None,
    ):
        self.repository = repository
        self.generator = generator
        self.compiler = compiler
        self.transition_generator = transition_generator
        self.progress = progress or PROGRESS
        self.timeout = timeout or settings.pipeline.orchestrator_timeout_seconds

    def _publish(self, job_id: str, progress: Progress) -> None:
        self.progress.publish(job_id, progress)

    async def run(self, job_id: str) -> JobSummary:
        """Generate every segment of a job and compile the result.

        Raises:
            NotFound: Job or segments could not be loaded (status untouched)
            EmptyBatch: Job has no segments (status untouched)
            InvalidJobState: Job already completed or failed (status untouched)
            AllSegmentsFailed: No segment generated successfully
            Exception: Any compiler or persistence failure, after the job is
                marked failed
        """
        job, segments = await self._load(job_id)

        started = time.monotonic()
        try:
            summary = await asyncio.wait_for(self._execute(job, segments), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            timeout_error = OrchestratorTimeout()
            await self._fail(job_id, timeout_error)
            raise timeout_error from e
        except Exception as e:
            await self._fail(job_id, e)
            raise

        logger.info(
            f"Video project {job_id}: completed in {time.monotonic() - started:.2f}s "
            f"({summary.succeeded_count} clips ok, {summary.failed_count} failed, "
            f"cost {summary.actual_cost}c)"
        )
        return summary

    async def _load(self, job_id: str) -> tuple[JobRecord, list[SegmentRecord]]:
        job = await self.repository.load_job(job_id)
        if job is None:
            raise NotFound(f"Video project not found: {job_id}")
        if is_terminal(job.status):
            raise InvalidJobState(f"Video project {job_id} is already {job.status.value}")

        segments = await self.repository.load_segments(job_id)
        if not segments:
            raise EmptyBatch("No clips to generate")
        return job, sorted(segments, key=lambda s: s.sequence_order)

    async def _execute(self, job: JobRecord, segments: list[SegmentRecord]) -> JobSummary:
        job_id = job.id
        unit_cost = segment_unit_cost(job.generate_native_audio)

        # Step 1: mark generating
        self._publish(
            job_id,
            Progress(step=ProgressStep.STARTING, label="Starting video generation…", percent_complete=5),
        )
        logger.info(f"Starting video generation for {job_id} ({len(segments)} clips)")
        await self.repository.update_job(
            job_id,
            status=JobStatus.GENERATING,
            clip_count=len(segments),
            estimated_cost=len(segments) * unit_cost,
        )

        # Step 2: generate all clips, one barrier
        self._publish(
            job_id,
            Progress(
                step=ProgressStep.GENERATING,
                label=f"Generating {len(segments)} clips…",
                current_index=0,
                total_count=len(segments),
                percent_complete=10,
            ),
        )
        outcomes = await asyncio.gather(*(self._generate_segment(s) for s in segments))
        succeeded = [o for o in outcomes if o.ok]
        failed = [o for o in outcomes if not o.ok]
        logger.info(
            f"Video project {job_id}: clip generation finished, "
            f"{len(succeeded)} succeeded, {len(failed)} failed"
        )

        await self.repository.update_segment_aggregates(job_id)

        if not succeeded:
            raise AllSegmentsFailed()
        if failed:
            logger.warning(
                f"Video project {job_id}: continuing without {len(failed)} failed clips "
                f"{[o.segment_id for o in failed]}"
            )

        # Step 2.5: seamless transitions
        if self.transition_generator is not None:
            await self._generate_transitions(job, segments, len(succeeded))

        # Step 3: compile
        await self.repository.update_job(job_id, status=JobStatus.COMPILING)
        self._publish(
            job_id,
            Progress(step=ProgressStep.COMPILING, label="Compiling video…", percent_complete=70),
        )
        logger.info(f"Video project {job_id}: compiling")
        result = await self.compiler.run(job_id)

        # Step 4: finalize
        actual_cost = len(succeeded) * unit_cost
        await self.repository.update_job(job_id, actual_cost=actual_cost)
        self._publish(
            job_id,
            Progress(step=ProgressStep.COMPLETED, label="Complete", percent_complete=100),
        )

        return JobSummary(
            job_id=job_id,
            final_artifact_url=result.final_artifact_url,
            succeeded_count=len(succeeded),
            failed_count=len(failed),
            actual_cost=actual_cost,
        )

    async def _generate_segment(self, segment: SegmentRecord) -> SegmentOutcome:
        try:
            return await self.generator.dispatch(segment)
        except Exception as e:
            logger.error(f"Clip {segment.id}: generation run failed: {type(e).__name__}: {e}")
            return SegmentOutcome(segment_id=segment.id, status=SegmentStatus.FAILED, error=str(e))

    async def _generate_transitions(
        self, job: JobRecord, segments: list[SegmentRecord], succeeded_count: int
    ) -> None:
        pairs = [
            (segment, segments[i + 1])
            for i, segment in enumerate(segments[:-1])
            if segment.transition_type == TransitionMode.SEAMLESS
        ]
        if not pairs:
            return

        self._publish(
            job.id,
            Progress(
                step=ProgressStep.GENERATING,
                label=f"Generating {len(pairs)} transitions…",
                current_index=succeeded_count,
                total_count=succeeded_count + len(pairs),
                percent_complete=60,
            ),
        )
        logger.info(f"Video project {job.id}: generating {len(pairs)} transition clips")

        results = await asyncio.gather(
            *(self.transition_generator.dispatch(s, nxt, job) for s, nxt in pairs),
            return_exceptions=True,
        )
        failures = [r for r in results if r is not True]
        if failures:
            # Compiler falls back to a hard cut where a transition is missing
            logger.warning(
                f"Video project {job.id}: {len(failures)} of {len(pairs)} transitions failed"
            )

    async def _fail(self, job_id: str, error: BaseException) -> None:
        """Publish the failure and record it on the job, best-effort."""
        reason = str(error) or type(error).__name__
        logger.error(f"Video generation failed for {job_id}: {reason}")

        self._publish(
            job_id,
            Progress(step=ProgressStep.FAILED, label=f"Generation failed: {reason}", percent_complete=0),
        )
        try:
            await self.repository.update_job(job_id, status=JobStatus.FAILED, error_message=reason)
        except Exception as db_err:
            logger.error(f"Failed to mark video project {job_id} as failed: {db_err}")
