"""Pydantic snapshots of job and segment records plus pipeline results.

The pipeline works on these detached snapshots rather than ORM rows so the
persistence layer can be swapped or faked without touching orchestration.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    COMPILING = "compiling"
    COMPLETED = "completed"
    FAILED = "failed"


class SegmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TransitionMode(str, Enum):
    CUT = "cut"
    SEAMLESS = "seamless"


class JobRecord(BaseModel):
    """Snapshot of a video project row."""

    id: str
    workspace_id: str
    aspect_ratio: str = "16:9"
    music_track_id: Optional[str] = None
    music_url: Optional[str] = None
    music_volume: Optional[int] = Field(default=None, ge=0, le=100)
    generate_native_audio: bool = True
    status: JobStatus = JobStatus.DRAFT
    clip_count: int = 0
    completed_clip_count: int = 0
    estimated_cost: int = 0
    actual_cost: Optional[int] = None
    final_video_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None


class SegmentRecord(BaseModel):
    """Snapshot of a video clip row."""

    id: str
    job_id: str
    sequence_order: int = Field(ge=1)
    source_image_url: str
    end_image_url: Optional[str] = None
    status: SegmentStatus = SegmentStatus.PENDING
    clip_url: Optional[str] = None
    transition_type: TransitionMode = TransitionMode.CUT
    transition_clip_url: Optional[str] = None
    duration_seconds: int = 5
    error_message: Optional[str] = None

    @property
    def is_compilable(self) -> bool:
        """True when the clip finished and has an artifact to download."""
        return self.status == SegmentStatus.COMPLETED and bool(self.clip_url)

    @property
    def tail_image_url(self) -> str:
        """Image the clip ends on: the end image, else the source image."""
        return self.end_image_url or self.source_image_url


class SegmentOutcome(BaseModel):
    """Terminal result of one dispatched segment generation."""

    segment_id: str
    status: SegmentStatus
    clip_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SegmentStatus.COMPLETED


class CompileResult(BaseModel):
    final_artifact_url: str
    duration_seconds: int
    included_count: int
    transition_count: int = 0


class JobSummary(BaseModel):
    """Returned to the caller of a successful orchestrator run."""

    job_id: str
    final_artifact_url: str
    succeeded_count: int
    failed_count: int
    actual_cost: int
