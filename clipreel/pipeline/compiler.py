"""Video compilation with the ffmpeg concat demuxer and optional music mix.

Turns a job's completed clips into one MP4:
- clips are concatenated in sequence order, re-encoded to H.264/AAC
- seamless transition clips are spliced between their clip and the next one
- an optional music track is mixed under the clips' own audio with
  ``amix=duration=first`` so the mix never outlasts the video

Each attempt runs in a freshly reset working directory, which makes the
whole operation safe to retry.
"""

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Callable, Optional, Sequence

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from clipreel.config import settings
from clipreel.db.repository import JobRepository
from clipreel.errors import (
    CompileTimeout,
    InvalidJobState,
    NoCompletedSegments,
    NotFound,
    PipelineError,
    TranscodeFailure,
)
from clipreel.orchestrator.state import is_terminal
from clipreel.schemas.job import CompileResult, JobStatus, SegmentRecord, TransitionMode
from clipreel.schemas.progress import Progress, ProgressStep
from clipreel.services.file_manager import WorkDirProvider
from clipreel.services.progress import PROGRESS, ProgressPublisher
from clipreel.services.storage import StorageClient, video_path

logger = logging.getLogger(__name__)

Transcoder = Callable[[list[str], Path, float], None]


def build_concat_manifest(paths: Sequence[Path]) -> str:
    """Build a concat demuxer list with absolute, quote-escaped paths."""
    lines = []
    for path in paths:
        escaped = str(Path(path).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def music_gain(volume: Optional[int]) -> float:
    """Map a 0-100 volume linearly onto a 0.0-1.0 gain."""
    if volume is None:
        volume = settings.pipeline.default_music_volume
    return max(0, min(100, volume)) / 100


def build_ffmpeg_command(
    concat_list: Path,
    output_path: Path,
    music_path: Optional[Path] = None,
    music_volume: Optional[int] = None,
) -> list[str]:
    """Build the ffmpeg argument list for a compile.

    Without music each clip keeps its own audio. With music a second input
    is volume-adjusted and mixed against the concatenated audio, cut off at
    the video's length.
    """
    cfg = settings.pipeline
    cmd = [
        "ffmpeg",
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",  # Allow absolute paths in the list file
        "-i",
        str(concat_list),
    ]

    if music_path is not None:
        gain = music_gain(music_volume)
        cmd += [
            "-i",
            str(music_path),
            "-filter_complex",
            f"[1:a]volume={gain:g}[music];"
            f"[0:a][music]amix=inputs=2:duration=first:dropout_transition=2[aout]",
            "-map",
            "0:v",
            "-map",
            "[aout]",
        ]

    cmd += [
        "-c:v",
        cfg.video_codec,
        "-preset",
        cfg.video_preset,
        "-crf",
        str(cfg.video_crf),
        "-c:a",
        cfg.audio_codec,
        "-b:a",
        cfg.audio_bitrate,
    ]
    if music_path is not None:
        cmd.append("-shortest")
    cmd.append(str(output_path))
    return cmd


def run_ffmpeg(cmd: list[str], cwd: Path, timeout: float) -> None:
    """Run ffmpeg synchronously, hiding its diagnostics behind TranscodeFailure."""
    try:
        subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, timeout=timeout)
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors="replace") if e.stderr else "No error output"
        logger.error(f"ffmpeg exited with {e.returncode}: {stderr[-2000:]}")
        raise TranscodeFailure() from e
    except subprocess.TimeoutExpired as e:
        logger.error(f"ffmpeg timed out after {timeout}s")
        raise TranscodeFailure() from e
    except FileNotFoundError as e:
        logger.error("ffmpeg binary not found on PATH")
        raise TranscodeFailure() from e


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, PipelineError):
        return exc.retryable
    return isinstance(exc, Exception)


class VideoCompiler:
    """Compile a job's completed clips into its final video.

    Args:
        repository: Job/segment persistence
        storage: Object storage for downloads and the final upload
        workdirs: Provider of per-job working directories
        progress: Progress channel shared with the orchestrator
        transcode: Callable running the ffmpeg command (cmd, cwd, timeout)
        max_attempts: Total attempts including the first
        wait: tenacity wait strategy between attempts
    """

    def __init__(
        self,
        repository: JobRepository,
        storage: StorageClient,
        workdirs: Optional[WorkDirProvider] = None,
        progress: Optional[ProgressPublisher] = None,
        transcode: Optional[Transcoder] = None,
        max_attempts: Optional[int] = None,
        wait=None,
        attempt_timeout: Optional[float] = None,
    ):
        cfg = settings.pipeline
        self.repository = repository
        self.storage = storage
        self.workdirs = workdirs or WorkDirProvider()
        self.progress = progress or PROGRESS
        self.transcode = transcode or run_ffmpeg
        self.max_attempts = max_attempts or cfg.compile_max_attempts
        self.wait = wait or wait_exponential(
            multiplier=cfg.compile_retry_min_seconds,
            min=cfg.compile_retry_min_seconds,
            max=cfg.compile_retry_max_seconds,
        )
        self.attempt_timeout = attempt_timeout or cfg.compile_timeout_seconds

    async def run(self, job_id: str) -> CompileResult:
        """Compile with the automatic retry policy.

        Raises:
            NotFound: Job does not exist (not retried)
            InvalidJobState: Job is already completed or failed, or has not
                reached generating yet (not retried)
            NoCompletedSegments: Nothing to compile (not retried)
            TranscodeFailure: ffmpeg failed on every attempt
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception(_should_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                n = attempt.retry_state.attempt_number
                logger.info(f"Video project {job_id}: compile attempt {n}/{self.max_attempts}")
                try:
                    return await asyncio.wait_for(
                        self._compile_once(job_id), timeout=self.attempt_timeout
                    )
                except asyncio.TimeoutError as e:
                    raise CompileTimeout() from e

    def _publish(self, job_id: str, step: ProgressStep, label: str, percent: int) -> None:
        self.progress.publish(job_id, Progress(step=step, label=label, percent_complete=percent))

    async def _compile_once(self, job_id: str) -> CompileResult:
        self._publish(job_id, ProgressStep.FETCHING, "Loading video data…", 5)

        job = await self.repository.load_job(job_id)
        if job is None:
            raise NotFound(f"Video project not found: {job_id}")
        if is_terminal(job.status):
            raise InvalidJobState(f"Video project {job_id} is already {job.status.value}")

        segments = await self.repository.load_segments(job_id)
        included = sorted(
            (s for s in segments if s.is_compilable), key=lambda s: s.sequence_order
        )
        if not included:
            raise NoCompletedSegments("No completed clips to compile")

        if job.status != JobStatus.COMPILING:
            # Standalone compiles enter the compiling phase themselves
            await self.repository.update_job(job_id, status=JobStatus.COMPILING)

        logger.info(
            f"Video project {job_id}: compiling {len(included)} of {len(segments)} clips"
        )

        work_dir = self.workdirs.reset(job_id)
        try:
            clip_paths, transition_count = await self._download_clips(job_id, work_dir, included)
            music_path = await self._download_music(job_id, work_dir, job.music_url)

            self._publish(job_id, ProgressStep.COMPILING, "Compiling video…", 45)

            concat_list = work_dir / "concat.txt"
            concat_list.write_text(build_concat_manifest(clip_paths))
            output_path = work_dir / "output.mp4"
            cmd = build_ffmpeg_command(concat_list, output_path, music_path, job.music_volume)

            logger.info(
                f"Video project {job_id}: running ffmpeg on {len(clip_paths)} files "
                f"(music={'yes' if music_path else 'no'})"
            )
            await asyncio.to_thread(
                self.transcode, cmd, work_dir, settings.pipeline.ffmpeg_timeout_seconds
            )
            if not output_path.exists():
                raise TranscodeFailure("FFmpeg did not produce output file")

            self._publish(job_id, ProgressStep.UPLOADING, "Uploading final video…", 80)
            final_url = await self.storage.upload(
                output_path.read_bytes(),
                video_path(job.workspace_id, job_id, "final.mp4"),
                "video/mp4",
            )

            # Metadata-derived on purpose; the encoded length is never probed
            duration = sum(s.duration_seconds for s in included)
            duration += transition_count * settings.pipeline.transition_duration_seconds

            await self.repository.update_job(
                job_id,
                status=JobStatus.COMPLETED,
                final_video_url=final_url,
                duration_seconds=duration,
                thumbnail_url=included[0].source_image_url,
            )

            logger.info(f"Video project {job_id}: compiled {duration}s video -> {final_url}")
            return CompileResult(
                final_artifact_url=final_url,
                duration_seconds=duration,
                included_count=len(included),
                transition_count=transition_count,
            )
        finally:
            self.workdirs.cleanup(job_id)

    async def _download_clips(
        self, job_id: str, work_dir: Path, included: list[SegmentRecord]
    ) -> tuple[list[Path], int]:
        """Download clips (and transitions) named so lexical order is play order."""
        has_transition = [
            i < len(included) - 1
            and seg.transition_type == TransitionMode.SEAMLESS
            and bool(seg.transition_clip_url)
            for i, seg in enumerate(included)
        ]
        total_items = len(included) + sum(has_transition)
        start = settings.pipeline.download_progress_start
        span = settings.pipeline.download_progress_end - start

        self._publish(
            job_id, ProgressStep.DOWNLOADING, f"Downloading {len(included)} clips…", start
        )

        paths: list[Path] = []
        transition_count = 0
        for i, segment in enumerate(included):
            clip_path = work_dir / f"{len(paths):03d}_clip.mp4"
            logger.info(f"Downloading clip {i + 1}/{len(included)} ({segment.id})")
            clip_path.write_bytes(await self.storage.download(segment.clip_url))
            paths.append(clip_path)

            if has_transition[i]:
                transition_path = work_dir / f"{len(paths):03d}_transition.mp4"
                try:
                    data = await self.storage.download(segment.transition_clip_url)
                except Exception as e:
                    logger.warning(
                        f"Failed to download transition for clip {segment.id}, "
                        f"continuing with a cut: {e}"
                    )
                else:
                    transition_path.write_bytes(data)
                    paths.append(transition_path)
                    transition_count += 1

            done = len(paths) + (sum(has_transition[: i + 1]) - transition_count)
            self._publish(
                job_id,
                ProgressStep.DOWNLOADING,
                f"Downloaded {done}/{total_items} clips",
                start + round(done / total_items * span),
            )

        return paths, transition_count

    async def _download_music(
        self, job_id: str, work_dir: Path, music_url: Optional[str]
    ) -> Optional[Path]:
        if not music_url:
            return None

        logger.info(f"Video project {job_id}: downloading music track")
        try:
            data = await self.storage.download(music_url)
        except Exception as e:
            logger.warning(f"Video project {job_id}: music download failed, compiling without it: {e}")
            return None

        music_path = work_dir / "music.mp3"
        music_path.write_bytes(data)
        return music_path
