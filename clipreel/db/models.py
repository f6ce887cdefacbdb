"""SQLAlchemy 2.0 ORM models for video projects and their clips."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, Boolean, ForeignKey, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class MusicTrack(Base):
    """Royalty-free background track that can be mixed under a video."""
    __tablename__ = "music_tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), default="modern")
    audio_url: Mapped[str] = mapped_column(String(1000))
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class VideoProject(Base):
    """A video job: one compiled video built from an ordered set of clips.

    Status lifecycle: draft -> generating -> compiling -> completed, or
    failed from any non-terminal status. Costs are stored in cents.
    """
    __tablename__ = "video_projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    workspace_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(Text, default="Untitled video")
    aspect_ratio: Mapped[str] = mapped_column(String(10), default="16:9")
    music_track_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("music_tracks.id"), nullable=True
    )
    music_volume: Mapped[int] = mapped_column(Integer, default=50)
    generate_native_audio: Mapped[bool] = mapped_column(Boolean, default=True)

    final_video_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="draft")

    clip_count: Mapped[int] = mapped_column(Integer, default=0)
    completed_clip_count: Mapped[int] = mapped_column(Integer, default=0)
    estimated_cost: Mapped[int] = mapped_column(Integer, default=0)
    actual_cost: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )


class VideoClip(Base):
    """One segment of a video, generated from a source still image."""
    __tablename__ = "video_clips"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    video_project_id: Mapped[str] = mapped_column(
        ForeignKey("video_projects.id", ondelete="CASCADE"), index=True
    )
    sequence_order: Mapped[int] = mapped_column(Integer)
    source_image_url: Mapped[str] = mapped_column(String(1000))
    end_image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    motion_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    transition_type: Mapped[str] = mapped_column(String(20), default="cut")  # cut | seamless
    transition_clip_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    clip_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=5)

    status: Mapped[str] = mapped_column(String(20), default="pending")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )
