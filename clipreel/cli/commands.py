"""CLI commands for clipreel using Typer and Rich.

Implements:
- generate: Generate every clip of a video project, then compile it
- compile: Re-compile a project from its already generated clips
- status: Show project details and its clips
- init-db: Create the database schema
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clipreel import validate_dependencies
from clipreel.db import init_database
from clipreel.db.repository import SqlJobRepository
from clipreel.orchestrator.pipeline import VideoJobOrchestrator
from clipreel.orchestrator.state import JOB_STATES
from clipreel.pipeline.compiler import VideoCompiler
from clipreel.schemas.job import JobStatus, SegmentStatus
from clipreel.schemas.progress import Progress
from clipreel.services.generation import (
    GenerationServiceClient,
    RemoteSegmentGenerator,
    RemoteTransitionGenerator,
)
from clipreel.services.progress import ProgressBoard
from clipreel.services.storage import HttpStorageClient
from clipreel.workers.tasks import compile_video_task

app = typer.Typer(name="clipreel", help="Compile still images into a single video")
console = Console()


class _StatusLineProgress(ProgressBoard):
    """ProgressBoard that mirrors every update onto a Rich status spinner."""

    def __init__(self, status):
        super().__init__()
        self._status = status

    def publish(self, job_id: str, progress: Progress) -> None:
        super().publish(job_id, progress)
        pct = f" ({progress.percent_complete}%)" if progress.percent_complete is not None else ""
        self._status.update(f"[bold green]{progress.label}{pct}")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def generate(
    job_id: str = typer.Argument(..., help="Video project id"),
):
    """Generate all clips for a project and compile the final video."""
    try:
        validate_dependencies()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    asyncio.run(_generate_async(job_id))


async def _generate_async(job_id: str):
    await init_database()
    repository = SqlJobRepository()
    client = GenerationServiceClient()

    try:
        with console.status("[bold green]Starting video generation...") as status:
            progress = _StatusLineProgress(status)
            orchestrator = VideoJobOrchestrator(
                repository,
                generator=RemoteSegmentGenerator(repository, client),
                compiler=VideoCompiler(repository, HttpStorageClient(), progress=progress),
                transition_generator=RemoteTransitionGenerator(repository, client),
                progress=progress,
            )
            summary = await orchestrator.run(job_id)

        console.print(f"[green]✓[/green] Video generation complete!")
        console.print(f"[green]Output:[/green] {summary.final_artifact_url}")
        console.print(
            f"Clips: {summary.succeeded_count} ok, {summary.failed_count} failed  "
            f"Cost: ${summary.actual_cost / 100:.2f}"
        )
        if summary.failed_count:
            console.print("[yellow]Some clips failed and were left out of the video[/yellow]")

    except Exception as e:
        console.print()
        console.print(f"[red]✗ Video generation failed:[/red] {str(e)}")
        raise typer.Exit(code=1)
    finally:
        await client.close()


@app.command()
def compile(
    job_id: str = typer.Argument(..., help="Video project id"),
):
    """Compile the final video from the project's completed clips."""
    try:
        validate_dependencies()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    asyncio.run(_compile_async(job_id))


async def _compile_async(job_id: str):
    await init_database()
    repository = SqlJobRepository()

    with console.status("[bold green]Compiling video...") as status:
        progress = _StatusLineProgress(status)
        compiler = VideoCompiler(repository, HttpStorageClient(), progress=progress)
        result = await compile_video_task(job_id, repository, compiler=compiler, progress=progress)

    if not result["success"]:
        console.print(f"[red]✗ Compilation failed:[/red] {result['error']}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Compiled {result['included_count']} clips ({result['duration_seconds']}s)")
    console.print(f"[green]Output:[/green] {result['final_artifact_url']}")


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Video project id"),
):
    """Show detailed project status and its clips."""
    asyncio.run(_status_async(job_id))


async def _status_async(job_id: str):
    await init_database()
    repository = SqlJobRepository()

    job = await repository.load_job(job_id)
    if job is None:
        console.print(f"[red]Error:[/red] Video project not found: {job_id}")
        raise typer.Exit(code=1)
    segments = await repository.load_segments(job_id)

    status_color = _get_status_color(job.status.value)
    info_lines = [
        f"[bold]ID:[/bold] {job.id}",
        f"[bold]Status:[/bold] [{status_color}]{job.status.value}[/{status_color}] [dim]({JOB_STATES[job.status]})[/dim]",
        f"[bold]Aspect Ratio:[/bold] {job.aspect_ratio}",
        f"[bold]Clips:[/bold] {job.completed_clip_count}/{job.clip_count} completed",
        f"[bold]Estimated Cost:[/bold] ${job.estimated_cost / 100:.2f}",
    ]
    if job.actual_cost is not None:
        info_lines.append(f"[bold]Actual Cost:[/bold] ${job.actual_cost / 100:.2f}")
    if job.music_url:
        info_lines.append(f"[bold]Music Volume:[/bold] {job.music_volume}%")
    if job.status == JobStatus.COMPLETED:
        info_lines.append(f"[bold]Duration:[/bold] {job.duration_seconds}s")
        info_lines.append(f"[bold]Output:[/bold] [green]{job.final_video_url}[/green]")
    if job.status == JobStatus.FAILED and job.error_message:
        info_lines.append(f"[bold]Error:[/bold] [red]{job.error_message}[/red]")

    console.print(Panel("\n".join(info_lines), title="[bold]Video Project[/bold]", border_style="blue"))

    if not segments:
        console.print("[yellow]No clips found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("#", justify="right")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Transition")
    table.add_column("Duration", justify="right")

    for segment in segments:
        color = _get_status_color(segment.status.value)
        table.add_row(
            str(segment.sequence_order),
            segment.id[:8] + "...",
            f"[{color}]{segment.status.value}[/{color}]",
            segment.transition_type.value,
            f"{segment.duration_seconds}s",
        )
    console.print(table)


@app.command(name="init-db")
def init_db():
    """Create database tables if they do not exist."""
    asyncio.run(init_database())
    console.print("[green]✓[/green] Database initialized")


def _get_status_color(status: str) -> str:
    """Get Rich color for a project or clip status.

    Color coding:
    - completed: green
    - failed: red
    - in-progress states: yellow
    - draft/pending: dim
    """
    if status == JobStatus.COMPLETED.value:
        return "green"
    elif status == JobStatus.FAILED.value:
        return "red"
    elif status in [JobStatus.GENERATING.value, JobStatus.COMPILING.value, SegmentStatus.PROCESSING.value]:
        return "yellow"
    elif status in [JobStatus.DRAFT.value, SegmentStatus.PENDING.value]:
        return "dim"
    else:
        return "white"


if __name__ == "__main__":
    app()
