from functools import partial

import pytest
from tenacity import wait_none
from typer.testing import CliRunner

from clipreel.cli import commands
from clipreel.pipeline.compiler import VideoCompiler
from clipreel.schemas.job import JobStatus

from conftest import JOB_ID, FakeTranscoder, completed, make_job, make_segments

runner = CliRunner()


@pytest.fixture
def cli_repository(monkeypatch, repository):
    async def no_schema(bind=None):
        return None

    monkeypatch.setattr(commands, "init_database", no_schema)
    monkeypatch.setattr(commands, "SqlJobRepository", lambda: repository)
    return repository


def test_status_shows_job_and_clips(cli_repository):
    segments = [completed(s) for s in make_segments(2)]
    cli_repository.add_job(
        make_job(status=JobStatus.FAILED, error_message="all segment generations failed"),
        segments,
    )

    result = runner.invoke(commands.app, ["status", JOB_ID])

    assert result.exit_code == 0
    assert "failed" in result.output
    assert "all segment generations failed" in result.output
    assert "seamless" not in result.output


def test_status_unknown_job_exits_non_zero(cli_repository):
    result = runner.invoke(commands.app, ["status", "missing"])

    assert result.exit_code == 1
    assert "not found" in result.output


@pytest.mark.parametrize(
    "status, color",
    [("completed", "green"), ("failed", "red"), ("compiling", "yellow"), ("pending", "dim")],
)
def test_status_colors(status, color):
    assert commands._get_status_color(status) == color


def test_failed_compile_marks_job_failed(cli_repository, storage, workdirs, monkeypatch):
    cli_repository.add_job(
        make_job(status=JobStatus.COMPILING), [completed(s) for s in make_segments(2)]
    )
    monkeypatch.setattr(commands, "validate_dependencies", lambda: "ffmpeg version test")
    monkeypatch.setattr(commands, "HttpStorageClient", lambda: storage)
    monkeypatch.setattr(
        commands,
        "VideoCompiler",
        partial(VideoCompiler, workdirs=workdirs, transcode=FakeTranscoder(fail_times=10), wait=wait_none()),
    )

    result = runner.invoke(commands.app, ["compile", JOB_ID])

    assert result.exit_code == 1
    assert "Compilation failed" in result.output
    job = cli_repository.jobs[JOB_ID]
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Video compilation failed - FFmpeg error"
