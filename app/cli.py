"""
Repatch CLI - Command line interface for running generations and jobs.

Usage:
    repatch --help                          Show all commands
    repatch generate owner/repo             Generate a changelog for the last week
    repatch generate owner/repo -w 1month   Generate for the last 30 days
    repatch regenerate-video RECORD_ID      Re-render a record's video
    repatch jobs --status failed            List async jobs
    repatch cleanup-jobs --hours 24         Delete finished jobs
"""

import asyncio
import uuid

import typer

app = typer.Typer(
    name="repatch",
    help="Repatch CLI - changelog and video generation",
    no_args_is_help=True,
)


# --- Step printer helpers ---


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def generate(
    repository: str = typer.Argument(..., help="owner/repo or a github.com URL"),
    window: str = typer.Option("1week", "--window", "-w", help="1day, 1week or 1month"),
    branch: str | None = typer.Option(None, "--branch", "-b", help="Branch to read commits from"),
    show_content: bool = typer.Option(False, "--show", "-s", help="Print the generated changelog"),
):
    """Run the full generation pipeline in-process and print the outcome."""
    from app.core.errors import InvalidRequestError
    from app.core.logging import setup_logging
    from app.dependencies import get_services
    from app.models.record import ProcessingStage
    from app.schemas.github import TimeWindow
    from app.schemas.record import GenerationRequest

    setup_logging()

    async def run() -> int:
        services = get_services()
        try:
            request = GenerationRequest(
                repository=repository,
                branch=branch,
                window=TimeWindow.from_preset(window),
            )
            record = await services.controller.create(request)
        except InvalidRequestError as e:
            _print_error(str(e))
            return 2

        typer.echo(f"\n🔄 Generating changelog for {record.repo_name} ({record.window_label})...")
        stage = await services.controller.run(record.id)
        record = await services.records.get(record.id)

        typer.echo(f"\nRecord {record.id}")
        typer.echo("-" * 40)
        if stage is ProcessingStage.FAILED:
            _print_error(record.error_message or "Generation failed")
            return 1

        _print_success(record.stage_message)
        if record.change_stats:
            stats = record.change_stats
            typer.echo(f"  +{stats['added']} −{stats['removed']} lines")
        if record.artifact_url:
            typer.echo(f"  🎬 {record.artifact_url}")
        if show_content and record.content:
            typer.echo("")
            typer.echo(record.content)
        return 0

    raise typer.Exit(asyncio.run(run()))


@app.command("regenerate-video")
def regenerate_video(
    record_id: str = typer.Argument(..., help="Generation record id"),
    force: bool = typer.Option(False, "--force", "-f", help="Render even if a video exists"),
):
    """Re-render a record's video as a render-video job and wait for it."""
    from app.core.errors import RepatchError
    from app.core.logging import setup_logging
    from app.dependencies import get_services
    from app.models.job import JobStatus

    setup_logging()

    try:
        parsed_id = uuid.UUID(record_id)
    except ValueError:
        _print_error(f"Invalid record id: {record_id}")
        raise typer.Exit(2)

    async def run() -> int:
        services = get_services()
        try:
            job = await services.dispatcher.regenerate_video(parsed_id, force=force)
        except RepatchError as e:
            _print_error(str(e))
            return 1

        typer.echo(f"\n🎬 Render job {job.id} queued...")
        await services.runner.join()
        job = await services.tracker.get(job.id)

        if job.status is JobStatus.COMPLETED:
            result = job.result or {}
            if result.get("reused"):
                _print_warning("Existing video reused (pass --force to re-render)")
            _print_success(f"Video: {result.get('artifact_url')}")
            return 0
        _print_error(f"Job {job.status.value}: {job.error or 'no details'}")
        return 1

    raise typer.Exit(asyncio.run(run()))


@app.command()
def jobs(
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    status: str | None = typer.Option(None, "--status", help="Filter by status"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum jobs to show"),
):
    """List async jobs, newest first."""
    from app.dependencies import get_services
    from app.models.job import JobStatus

    try:
        job_status = JobStatus(status) if status else None
    except ValueError:
        _print_error(f"Unknown status: {status}")
        raise typer.Exit(2)

    async def run() -> None:
        items = await get_services().tracker.list(type=type, status=job_status, limit=limit)
        if not items:
            typer.echo("No jobs found")
            return
        for job in items:
            line = f"{job.id}  {job.type:<20} {job.status.value:<10} {job.progress:>3}%  {job.created_at:%Y-%m-%d %H:%M}"
            if job.error:
                line += f"  {job.error[:60]}"
            typer.echo(line)

    asyncio.run(run())


@app.command("cleanup-jobs")
def cleanup_jobs(
    hours: int = typer.Option(24, "--hours", help="Delete jobs finished more than this many hours ago"),
):
    """Delete finished async jobs older than the cutoff."""
    from app.core.logging import setup_logging
    from app.dependencies import get_services

    setup_logging()
    deleted = asyncio.run(get_services().tracker.cleanup(older_than_hours=hours))
    _print_success(f"Deleted {deleted} finished jobs")


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
