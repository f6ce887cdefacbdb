"""
Database module for clipreel.

Provides async SQLAlchemy engine with SQLite WAL mode,
session management, and schema initialization.
"""
from clipreel.db.engine import async_session, engine, shutdown
from clipreel.db.models import Base, MusicTrack, VideoClip, VideoProject


async def init_database(bind=None):
    """Initialize database schema on first run."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "MusicTrack",
    "VideoClip",
    "VideoProject",
    "engine",
    "async_session",
    "shutdown",
    "init_database",
]
