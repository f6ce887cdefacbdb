"""Persistence calls used by the pipeline.

The orchestrator and compiler only read whole records and apply
partial-field updates through a JobRepository; they never build queries.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clipreel.db.models import MusicTrack, VideoClip, VideoProject
from clipreel.errors import InvalidJobState, NotFound
from clipreel.orchestrator.state import can_transition
from clipreel.schemas.job import JobRecord, JobStatus, SegmentRecord, SegmentStatus

logger = logging.getLogger(__name__)

# Fields of a video project the pipeline is allowed to write
JOB_UPDATE_FIELDS = {
    "status",
    "clip_count",
    "completed_clip_count",
    "estimated_cost",
    "actual_cost",
    "final_video_url",
    "duration_seconds",
    "thumbnail_url",
    "error_message",
}


class JobRepository(ABC):
    """Record access for video jobs and their segments."""

    @abstractmethod
    async def load_job(self, job_id: str) -> Optional[JobRecord]:
        """Return the job snapshot, or None if it does not exist."""
        ...

    @abstractmethod
    async def load_segments(self, job_id: str) -> list[SegmentRecord]:
        """Return the job's segments ordered by sequence order."""
        ...

    @abstractmethod
    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        ...

    @abstractmethod
    async def update_job(self, job_id: str, **fields) -> JobRecord:
        """Apply a partial update and return the new snapshot.

        Raises:
            NotFound: If the job row no longer exists.
            InvalidJobState: If a status change breaks the lifecycle order.
            ValueError: If a field is not writable by the pipeline.
        """
        ...

    @abstractmethod
    async def update_segment_aggregates(self, job_id: str) -> tuple[int, int]:
        """Recount clips and persist (clip_count, completed_clip_count)."""
        ...


def _job_record(project: VideoProject, music: Optional[MusicTrack]) -> JobRecord:
    return JobRecord(
        id=project.id,
        workspace_id=project.workspace_id,
        aspect_ratio=project.aspect_ratio,
        music_track_id=project.music_track_id,
        music_url=music.audio_url if music else None,
        music_volume=project.music_volume,
        generate_native_audio=project.generate_native_audio,
        status=project.status,
        clip_count=project.clip_count,
        completed_clip_count=project.completed_clip_count,
        estimated_cost=project.estimated_cost,
        actual_cost=project.actual_cost,
        final_video_url=project.final_video_url,
        duration_seconds=project.duration_seconds,
        thumbnail_url=project.thumbnail_url,
        error_message=project.error_message,
    )


def _segment_record(clip: VideoClip) -> SegmentRecord:
    return SegmentRecord(
        id=clip.id,
        job_id=clip.video_project_id,
        sequence_order=clip.sequence_order,
        source_image_url=clip.source_image_url,
        end_image_url=clip.end_image_url,
        status=clip.status,
        clip_url=clip.clip_url,
        transition_type=clip.transition_type,
        transition_clip_url=clip.transition_clip_url,
        duration_seconds=clip.duration_seconds,
        error_message=clip.error_message,
    )


class SqlJobRepository(JobRepository):
    """JobRepository backed by the async SQLAlchemy session factory."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        if session_factory is None:
            from clipreel.db.engine import async_session
            session_factory = async_session
        self._session_factory = session_factory

    async def _load_music(self, session: AsyncSession, project: VideoProject) -> Optional[MusicTrack]:
        if not project.music_track_id:
            return None
        return await session.get(MusicTrack, project.music_track_id)

    async def load_job(self, job_id: str) -> Optional[JobRecord]:
        async with self._session_factory() as session:
            project = await session.get(VideoProject, job_id)
            if project is None:
                return None
            music = await self._load_music(session, project)
            return _job_record(project, music)

    async def load_segments(self, job_id: str) -> list[SegmentRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VideoClip)
                .where(VideoClip.video_project_id == job_id)
                .order_by(VideoClip.sequence_order)
            )
            return [_segment_record(clip) for clip in result.scalars().all()]

    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        async with self._session_factory() as session:
            clip = await session.get(VideoClip, segment_id)
            return _segment_record(clip) if clip else None

    async def update_job(self, job_id: str, **fields) -> JobRecord:
        unknown = set(fields) - JOB_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable by the pipeline: {sorted(unknown)}")

        async with self._session_factory() as session:
            project = await session.get(VideoProject, job_id)
            if project is None:
                raise NotFound(f"Video project not found: {job_id}")

            if "status" in fields:
                target = JobStatus(fields["status"])
                if not can_transition(JobStatus(project.status), target):
                    raise InvalidJobState(
                        f"Video project {job_id} cannot move from {project.status} to {target.value}"
                    )
                fields["status"] = target.value

            for name, value in fields.items():
                setattr(project, name, value)
            await session.commit()

            music = await self._load_music(session, project)
            return _job_record(project, music)

    async def update_segment_aggregates(self, job_id: str) -> tuple[int, int]:
        async with self._session_factory() as session:
            total = (
                await session.execute(
                    select(func.count(VideoClip.id)).where(VideoClip.video_project_id == job_id)
                )
            ).scalar() or 0
            completed = (
                await session.execute(
                    select(func.count(VideoClip.id))
                    .where(VideoClip.video_project_id == job_id)
                    .where(VideoClip.status == SegmentStatus.COMPLETED.value)
                )
            ).scalar() or 0

            project = await session.get(VideoProject, job_id)
            if project is None:
                raise NotFound(f"Video project not found: {job_id}")
            project.clip_count = total
            project.completed_clip_count = completed
            await session.commit()

        logger.info(f"Video project {job_id}: {completed}/{total} clips completed")
        return total, completed
