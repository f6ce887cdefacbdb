"""
Working directory management for video compilation.

Each compile attempt owns an isolated directory keyed by job id. Resetting a
key destroys whatever a previous attempt left behind, so retries always start
from an empty directory.
"""
import logging
import shutil
from pathlib import Path

from clipreel.config import settings

logger = logging.getLogger(__name__)


class WorkDirProvider:
    """
    Hand out disposable per-job working directories under a base directory.

    Implements path traversal protection so a crafted key cannot escape the
    base directory.
    """

    def __init__(self, base_dir: str | Path | None = None):
        """
        Args:
            base_dir: Root directory for all working directories.
                     If None, uses settings.storage.work_dir
        """
        if base_dir is None:
            base_dir = settings.storage.work_dir

        self.base_dir = Path(base_dir).resolve()

    def path_for(self, key: str) -> Path:
        """
        Resolve the working directory for a key without creating it.

        Raises:
            ValueError: If key creates path outside base_dir (traversal attack)
        """
        work_dir = (self.base_dir / f"video-compile-{key}").resolve()

        if not work_dir.is_relative_to(self.base_dir):
            raise ValueError("Invalid working directory key")

        return work_dir

    def reset(self, key: str) -> Path:
        """Destroy any existing directory for key and create it empty."""
        work_dir = self.path_for(key)
        if work_dir.exists():
            logger.info(f"Removing stale working directory {work_dir}")
            shutil.rmtree(work_dir)
        work_dir.mkdir(parents=True)
        return work_dir

    def cleanup(self, key: str) -> None:
        """Delete the directory for key if it exists."""
        work_dir = self.path_for(key)
        if work_dir.exists():
            shutil.rmtree(work_dir, ignore_errors=True)
