"""Shared fakes for pipeline tests.

The fakes stand in for the external collaborators (persistence, object
storage, clip generation, ffmpeg) so orchestration and compilation can be
exercised deterministically without network access or an ffmpeg binary.
"""

import asyncio
from pathlib import Path
from typing import Optional

import pytest
from tenacity import wait_none

from clipreel.db.repository import JobRepository
from clipreel.errors import InvalidJobState, NotFound, TranscodeFailure
from clipreel.orchestrator.state import can_transition
from clipreel.pipeline.compiler import VideoCompiler
from clipreel.schemas.job import (
    JobRecord,
    JobStatus,
    SegmentOutcome,
    SegmentRecord,
    SegmentStatus,
)
from clipreel.services.file_manager import WorkDirProvider
from clipreel.services.generation import SegmentGenerator, TransitionGenerator
from clipreel.services.progress import ProgressBoard
from clipreel.services.storage import StorageClient

JOB_ID = "job-1"
WORKSPACE_ID = "ws-1"


def clip_url(segment_id: str) -> str:
    return f"https://cdn.test/clips/{segment_id}.mp4"


def make_segments(count: int, job_id: str = JOB_ID, **overrides) -> list[SegmentRecord]:
    return [
        SegmentRecord(
            id=f"seg-{i}",
            job_id=job_id,
            sequence_order=i,
            source_image_url=f"https://cdn.test/images/{i}.jpg",
            **overrides,
        )
        for i in range(1, count + 1)
    ]


def completed(segment: SegmentRecord, **extra) -> SegmentRecord:
    return segment.model_copy(
        update={"status": SegmentStatus.COMPLETED, "clip_url": clip_url(segment.id), **extra}
    )


class FakeRepository(JobRepository):
    def __init__(self):
        self.jobs: dict[str, JobRecord] = {}
        self.segments: dict[str, list[SegmentRecord]] = {}
        self.updates: list[tuple[str, dict]] = []
        self.fail_status_writes: set[JobStatus] = set()

    def add_job(self, job: JobRecord, segments: list[SegmentRecord]) -> None:
        self.jobs[job.id] = job
        self.segments[job.id] = list(segments)

    def set_segment(self, segment_id: str, **fields) -> None:
        for job_id, segments in self.segments.items():
            for i, segment in enumerate(segments):
                if segment.id == segment_id:
                    segments[i] = segment.model_copy(update=fields)
                    return
        raise KeyError(segment_id)

    async def load_job(self, job_id: str) -> Optional[JobRecord]:
        return self.jobs.get(job_id)

    async def load_segments(self, job_id: str) -> list[SegmentRecord]:
        return list(self.segments.get(job_id, []))

    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        for segments in self.segments.values():
            for segment in segments:
                if segment.id == segment_id:
                    return segment
        return None

    async def update_job(self, job_id: str, **fields) -> JobRecord:
        if job_id not in self.jobs:
            raise NotFound(f"Video project not found: {job_id}")
        job = self.jobs[job_id]
        if "status" in fields:
            target = JobStatus(fields["status"])
            if target in self.fail_status_writes:
                raise ConnectionError("database unavailable")
            if not can_transition(job.status, target):
                raise InvalidJobState(f"cannot move from {job.status} to {target}")
            fields["status"] = target
        self.updates.append((job_id, dict(fields)))
        self.jobs[job_id] = job.model_copy(update=fields)
        return self.jobs[job_id]

    async def update_segment_aggregates(self, job_id: str) -> tuple[int, int]:
        segments = self.segments.get(job_id, [])
        done = sum(1 for s in segments if s.status == SegmentStatus.COMPLETED)
        await self.update_job(job_id, clip_count=len(segments), completed_clip_count=done)
        return len(segments), done


class FakeGenerator(SegmentGenerator):
    """Completes every segment except those listed, optionally out of order."""

    def __init__(
        self,
        repository: FakeRepository,
        fail: tuple[int, ...] = (),
        crash: tuple[int, ...] = (),
        delays: Optional[dict[int, float]] = None,
    ):
        self.repository = repository
        self.fail = set(fail)
        self.crash = set(crash)
        self.delays = delays or {}
        self.dispatched: list[str] = []
        self.finished: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def dispatch(self, segment: SegmentRecord) -> SegmentOutcome:
        self.dispatched.append(segment.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(segment.sequence_order, 0))
        finally:
            self.in_flight -= 1
        self.finished.append(segment.sequence_order)

        if segment.sequence_order in self.crash:
            raise RuntimeError("worker lost")
        if segment.sequence_order in self.fail:
            self.repository.set_segment(
                segment.id, status=SegmentStatus.FAILED, error_message="generation rejected"
            )
            return SegmentOutcome(
                segment_id=segment.id, status=SegmentStatus.FAILED, error="generation rejected"
            )

        url = clip_url(segment.id)
        self.repository.set_segment(segment.id, status=SegmentStatus.COMPLETED, clip_url=url)
        return SegmentOutcome(segment_id=segment.id, status=SegmentStatus.COMPLETED, clip_url=url)


class FakeTransitionGenerator(TransitionGenerator):
    def __init__(self, repository: FakeRepository, fail: tuple[int, ...] = ()):
        self.repository = repository
        self.fail = set(fail)
        self.pairs: list[tuple[str, str]] = []

    async def dispatch(self, segment, next_segment, job) -> bool:
        self.pairs.append((segment.id, next_segment.id))
        if segment.sequence_order in self.fail:
            raise RuntimeError("transition model unavailable")
        self.repository.set_segment(
            segment.id, transition_clip_url=f"https://cdn.test/transitions/{segment.id}.mp4"
        )
        return True


class FakeStorage(StorageClient):
    def __init__(self):
        self.failing: set[str] = set()
        self.downloads: list[str] = []
        self.uploads: dict[str, tuple[bytes, str]] = {}

    async def download(self, url: str) -> bytes:
        self.downloads.append(url)
        if url in self.failing:
            raise ConnectionError(f"GET {url} failed")
        return f"<{url}>".encode()

    async def upload(self, data: bytes, path: str, content_type: str) -> str:
        self.uploads[path] = (data, content_type)
        return f"https://storage.test/{path}"


class FakeTranscoder:
    """Records ffmpeg invocations and writes a stand-in output file."""

    def __init__(self, fail_times: int = 0, write_output: bool = True):
        self.fail_times = fail_times
        self.write_output = write_output
        self.calls: list[list[str]] = []
        self.manifests: list[list[str]] = []
        self.work_dir_listings: list[list[str]] = []

    def __call__(self, cmd: list[str], cwd: Path, timeout: float) -> None:
        self.calls.append(cmd)
        self.work_dir_listings.append(sorted(p.name for p in Path(cwd).iterdir()))
        concat_list = Path(cmd[cmd.index("-i") + 1])
        entries = [
            Path(line[len("file '"):-1]).name
            for line in concat_list.read_text().splitlines()
        ]
        self.manifests.append(entries)

        if len(self.calls) <= self.fail_times:
            (Path(cwd) / "output.mp4.partial").write_bytes(b"half")
            raise TranscodeFailure()

        if self.write_output:
            Path(cmd[-1]).write_bytes(b"compiled:" + ",".join(entries).encode())

    @property
    def last_clip_files(self) -> list[str]:
        return self.manifests[-1]


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def board():
    return ProgressBoard()


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def workdirs(tmp_path):
    return WorkDirProvider(tmp_path / "work")


@pytest.fixture
def make_compiler(repository, storage, board, workdirs):
    def _make(transcode, **kwargs):
        return VideoCompiler(
            repository,
            storage,
            workdirs=workdirs,
            progress=kwargs.pop("progress", board),
            transcode=transcode,
            wait=wait_none(),
            **kwargs,
        )

    return _make


def make_job(**overrides) -> JobRecord:
    fields = {"id": JOB_ID, "workspace_id": WORKSPACE_ID}
    fields.update(overrides)
    return JobRecord(**fields)
