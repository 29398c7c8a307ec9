"""CLI entry point for the scene timeline compiler."""

import json
import logging
import typer
import yaml
from pathlib import Path
from typing import Optional
from pydantic import ValidationError

from . import __version__
from .config import config
from .errors import BuildConflictError, InvalidTransitionError, JobNotFoundError
from .models import JobStatus, PreflightReport, ProjectSnapshot, RenderJob

app = typer.Typer(
    name="sceneline",
    help="Compile scene timelines into render specifications",
    no_args_is_help=True
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sceneline version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """SceneLine - Scene timeline compilation and render job tracking."""
    pass


def _load_snapshot(path: Path) -> ProjectSnapshot:
    if not path.exists():
        typer.echo(f"❌ Snapshot not found: {path}")
        raise typer.Exit(1)
    try:
        return ProjectSnapshot.from_yaml(path)
    except (ValidationError, yaml.YAMLError, TypeError) as e:
        typer.echo(f"❌ Invalid project snapshot {path}:\n{e}")
        raise typer.Exit(1)


def _render_client():
    from .services.renderer import HttpRenderClient

    config.validate_render_required()
    return HttpRenderClient()


def _manager():
    from .compiler import TimelineCompiler
    from .services import JsonFileJobStore, RenderJobManager

    try:
        renderer = _render_client()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)
    return RenderJobManager(
        store=JsonFileJobStore(config.job_store_path),
        renderer=renderer,
        compiler=TimelineCompiler(),
    )


def _print_report(report: PreflightReport) -> None:
    for timing in report.timeline:
        typer.echo(
            f"   🎞️  Scene {timing.idx}: {timing.start_ms}-{timing.end_ms} ms "
            f"({timing.duration_ms} ms, {timing.source})"
        )
    typer.echo(f"   Total duration: {report.total_duration_ms / 1000:.1f}s")

    if report.errors:
        typer.echo(f"\n❌ Errors ({len(report.errors)}):")
        for issue in report.errors:
            where = f"scene {issue.scene_idx}" if issue.scene_idx else "project"
            typer.echo(f"   [{issue.code.value}] {where}: {issue.message}")
            if issue.hint:
                typer.echo(f"      → {issue.hint}")

    if report.warnings:
        typer.echo(f"\n⚠️  Warnings ({len(report.warnings)}):")
        for issue in report.warnings:
            where = f"scene {issue.scene_idx}" if issue.scene_idx else "project"
            typer.echo(f"   [{issue.code.value}] {where}: {issue.message}")


def _print_job(job: RenderJob) -> None:
    icon = {
        JobStatus.COMPLETED: "✅",
        JobStatus.FAILED: "❌",
        JobStatus.CANCELLED: "🚫",
        JobStatus.RETRY_WAIT: "⏳",
    }.get(job.status, "🎬")
    typer.echo(f"{icon} Job {job.id}: {job.status.value} ({job.progress}%)")
    typer.echo(f"   Project: {job.project_id} (attempt {job.attempt})")
    if job.output_url:
        typer.echo(f"   Output: {job.output_url}")
    if job.error_code:
        typer.echo(f"   Error: {job.error_code}: {job.error_message}")
    if job.next_retry_at:
        typer.echo(f"   Next retry: {job.next_retry_at.isoformat()}")


@app.command()
def preflight(
    snapshot: Path = typer.Argument(
        ...,
        help="Path to the project snapshot YAML"
    ),
    check_reachability: bool = typer.Option(
        False,
        "--check-reachability",
        help="Probe visual locators over HTTP"
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the report as JSON"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Check whether a project can be built, without building it."""
    from .compiler import TimelineCompiler

    setup_logging(verbose)
    project = _load_snapshot(snapshot)
    report = TimelineCompiler().preflight(project, check_reachability=check_reachability)

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
    else:
        typer.echo(f"🔎 Preflight: {project.project_id}")
        _print_report(report)
        if report.can_build:
            typer.echo("\n✅ Ready to build")

    if not report.can_build:
        raise typer.Exit(1)


@app.command()
def compile(
    snapshot: Path = typer.Argument(
        ...,
        help="Path to the project snapshot YAML"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the render specification to this file (default: stdout)"
    ),
    measure_local: bool = typer.Option(
        False,
        "--measure-local",
        help="Measure durations of local clips that have none recorded"
    ),
    check_reachability: bool = typer.Option(
        False,
        "--check-reachability",
        help="Probe visual locators over HTTP"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Compile a project into a render specification."""
    from .compiler import TimelineCompiler

    setup_logging(verbose)
    project = _load_snapshot(snapshot)

    if measure_local:
        from .media import fill_missing_durations
        project = fill_missing_durations(project, snapshot.parent)

    result = TimelineCompiler().compile(project, check_reachability=check_reachability)
    if result.spec is None:
        typer.echo(f"❌ Build blocked: {project.project_id}")
        _print_report(result.report)
        raise typer.Exit(1)

    document = json.dumps(result.spec.model_dump(mode="json"), indent=2)
    if output is None:
        typer.echo(document)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document)
    typer.echo(f"✅ Render specification written: {output}")
    typer.echo(f"   Scenes: {result.spec.summary.total_scenes}")
    typer.echo(f"   Duration: {result.spec.summary.total_duration_ms / 1000:.1f}s")
    typer.echo(f"   Hash: {result.spec.content_hash}")


@app.command()
def build(
    snapshot: Path = typer.Argument(
        ...,
        help="Path to the project snapshot YAML"
    ),
    check_reachability: bool = typer.Option(
        False,
        "--check-reachability",
        help="Probe visual locators over HTTP"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Submit a render job for a project."""
    setup_logging(verbose)
    project = _load_snapshot(snapshot)
    manager = _manager()

    try:
        job = manager.submit(project, check_reachability=check_reachability)
    except BuildConflictError as e:
        typer.echo(f"❌ {e}")
        typer.echo(f"   In-flight job: {e.job_id}")
        raise typer.Exit(1)

    _print_job(job)
    if job.status == JobStatus.FAILED:
        raise typer.Exit(1)


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Render job id"),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Refresh and show a render job."""
    setup_logging(verbose)
    manager = _manager()
    try:
        job = manager.refresh(job_id)
    except JobNotFoundError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    _print_job(job)


@app.command()
def cancel(
    job_id: str = typer.Argument(..., help="Render job id"),
) -> None:
    """Cancel an in-flight render job."""
    setup_logging()
    manager = _manager()
    try:
        job = manager.cancel(job_id)
    except (JobNotFoundError, InvalidTransitionError) as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    _print_job(job)


@app.command()
def retry(
    job_id: str = typer.Argument(..., help="Failed or cancelled render job id"),
    snapshot: Optional[Path] = typer.Option(
        None,
        "--snapshot",
        "-s",
        help="Recompile from this snapshot instead of resubmitting the stored specification"
    ),
) -> None:
    """Start a new attempt for a failed or cancelled job."""
    setup_logging()
    project = _load_snapshot(snapshot) if snapshot else None
    manager = _manager()
    try:
        job = manager.retry(job_id, snapshot=project)
    except (BuildConflictError, JobNotFoundError, InvalidTransitionError, ValueError) as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    _print_job(job)


@app.command()
def sweep() -> None:
    """Fail render jobs that have stopped making progress."""
    setup_logging()
    manager = _manager()
    swept = manager.fail_stuck_jobs()
    if not swept:
        typer.echo("✅ No stuck jobs")
        return
    for job in swept:
        _print_job(job)
    typer.echo(f"\n⚠️  {len(swept)} stuck job(s) timed out")


if __name__ == "__main__":
    app()
