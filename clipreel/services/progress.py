"""Last-write-wins progress publication for running jobs.

Observers read the latest Progress per job id. Nothing is appended, and
once more than ``max_jobs`` jobs are tracked the least recently updated
ones are dropped.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional

from clipreel.config import settings
from clipreel.schemas.progress import Progress

logger = logging.getLogger(__name__)


class ProgressPublisher(ABC):
    @abstractmethod
    def publish(self, job_id: str, progress: Progress) -> None:
        ...

    @abstractmethod
    def latest(self, job_id: str) -> Optional[Progress]:
        ...


class ProgressBoard(ProgressPublisher):
    """In-process key-value slot per job, guarded for concurrent writers."""

    def __init__(self, max_jobs: Optional[int] = None):
        self.max_jobs = max_jobs or settings.pipeline.progress_max_jobs
        self._slots: OrderedDict[str, Progress] = OrderedDict()
        self._lock = threading.Lock()

    def publish(self, job_id: str, progress: Progress) -> None:
        with self._lock:
            self._slots[job_id] = progress
            self._slots.move_to_end(job_id)
            while len(self._slots) > self.max_jobs:
                self._slots.popitem(last=False)
        logger.debug(f"[{job_id}] {progress.step.value}: {progress.label}")

    def latest(self, job_id: str) -> Optional[Progress]:
        with self._lock:
            return self._slots.get(job_id)

    def discard(self, job_id: str) -> None:
        with self._lock:
            self._slots.pop(job_id, None)


# Process-wide board shared by the API and background tasks
PROGRESS = ProgressBoard()
