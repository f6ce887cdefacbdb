"""Background task wrappers report outcomes instead of raising."""

import pytest

from clipreel.schemas.job import JobStatus, SegmentStatus
from clipreel.schemas.progress import ProgressStep
from clipreel.services.progress import PROGRESS
from clipreel.workers import tasks

from conftest import JOB_ID, FakeTranscoder, completed, make_job, make_segments


@pytest.fixture
def patch_compiler(monkeypatch, make_compiler):
    def _patch(transcode):
        monkeypatch.setattr(tasks, "build_compiler", lambda repository: make_compiler(transcode))

    yield _patch
    PROGRESS.discard(JOB_ID)


async def test_compile_task_reports_success(repository, transcoder, patch_compiler):
    repository.add_job(make_job(status=JobStatus.COMPILING), [completed(s) for s in make_segments(2)])
    patch_compiler(transcoder)

    result = await tasks.compile_video_task(JOB_ID, repository)

    assert result["success"] is True
    assert result["video_project_id"] == JOB_ID
    assert result["duration_seconds"] == 10
    assert PROGRESS.latest(JOB_ID).step == ProgressStep.COMPLETED


async def test_compile_task_marks_job_failed(repository, patch_compiler):
    repository.add_job(make_job(status=JobStatus.COMPILING), [completed(s) for s in make_segments(2)])
    patch_compiler(FakeTranscoder(fail_times=10))

    result = await tasks.compile_video_task(JOB_ID, repository)

    assert result == {
        "success": False,
        "video_project_id": JOB_ID,
        "error": "Video compilation failed - FFmpeg error",
    }
    assert repository.jobs[JOB_ID].status == JobStatus.FAILED
    assert PROGRESS.latest(JOB_ID).step == ProgressStep.FAILED


async def test_compile_task_with_nothing_to_compile(repository, transcoder, patch_compiler):
    failed = [s.model_copy(update={"status": SegmentStatus.FAILED}) for s in make_segments(2)]
    repository.add_job(make_job(status=JobStatus.COMPILING), failed)
    patch_compiler(transcoder)

    result = await tasks.compile_video_task(JOB_ID, repository)

    assert result["success"] is False
    assert result["error"] == "No completed clips to compile"
    assert repository.jobs[JOB_ID].error_message == "No completed clips to compile"
    assert transcoder.calls == []


@pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.FAILED])
async def test_compile_task_leaves_finished_job_untouched(repository, transcoder, patch_compiler, status):
    repository.add_job(make_job(status=status), [completed(s) for s in make_segments(2)])
    patch_compiler(transcoder)

    result = await tasks.compile_video_task(JOB_ID, repository)

    assert result["success"] is False
    assert result["error"] == f"Video project {JOB_ID} is already {status.value}"
    assert repository.updates == []
    assert transcoder.calls == []
