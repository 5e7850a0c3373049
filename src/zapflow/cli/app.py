"""
Root Typer application for the zapflow CLI.

Commands::

    zapflow init-db             create the engine tables
    zapflow process-outbox      drain pending runs once
    zapflow run-schedules       fire due schedules once
    zapflow poll                poll active triggers once
    zapflow next-run            preview a schedule's upcoming runs
    zapflow serve               HTTP adapter (+ optional in-process tickers)
"""

from __future__ import annotations

from datetime import datetime

import typer

from zapflow import __version__
from zapflow.cli.utils import console, err_console, make_container, print_dict, print_json, print_rows
from zapflow.container import ZapflowContainer
from zapflow.core.errors import ZapflowError
from zapflow.core.logging import configure_logging
from zapflow.core.models import ScheduleSpec, ScheduleType
from zapflow.core.settings import get_settings
from zapflow.core.timestamps import from_iso8601, to_iso8601, utc_now
from zapflow.scheduling.calculator import next_run

app = typer.Typer(
    name="zapflow",
    help="zapflow — trigger-to-action workflow engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

DatabaseOption = typer.Option(None, "--database", "-d", help="SQLite file (default: settings)")
JsonOption = typer.Option(False, "--json", help="Output as JSON")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"zapflow {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V", help="Show version and exit.", callback=_version_callback, is_eager=True
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override ZAPFLOW_LOG_LEVEL"),
) -> None:
    """zapflow CLI — drain the outbox, fire schedules, poll sources, serve hooks."""
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.log_json)


@app.command("init-db")
def init_db(database: str | None = DatabaseOption) -> None:
    """Create the engine tables (idempotent)."""
    with make_container(database) as c:
        c.init_db()
        console.print(f"[green]✓[/green] Tables ready in {c.settings.database_path}")


@app.command("process-outbox")
def process_outbox(
    database: str | None = DatabaseOption,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max runs to claim"),
    as_json: bool = JsonOption,
) -> None:
    """Claim pending runs and execute their action chains."""
    with make_container(database) as c:
        result = c.worker.process_pending(limit)
    if as_json:
        print_json(result.to_dict())
        return
    print_rows(
        [
            {
                "run_id": r.run_id,
                "workflow_id": r.workflow_id,
                "actions": r.actions_executed,
                "errors": len(r.errors),
                "skipped": r.skipped_reason or "",
            }
            for r in result.reports
        ],
        title=f"Processed {result.processed}/{result.claimed}",
    )
    if result.failures:
        err_console.print(f"[bold red]{len(result.failures)} run(s) failed[/bold red]")
        raise typer.Exit(code=1)


@app.command("run-schedules")
def run_schedules(database: str | None = DatabaseOption, as_json: bool = JsonOption) -> None:
    """Fire every schedule whose next run is due."""
    with make_container(database) as c:
        result = c.schedules.tick()
    if as_json:
        print_json(result.to_dict())
    else:
        print_dict(result.to_dict(), title="Schedules")
    if result.failed:
        raise typer.Exit(code=1)


@app.command("poll")
def poll(
    database: str | None = DatabaseOption,
    service: str | None = typer.Option(None, "--service", "-s", help="Only triggers of this source"),
    as_json: bool = JsonOption,
) -> None:
    """Poll active triggers and admit changed rows as runs."""
    with make_container(database) as c:
        summary = c.poll_orchestrator.poll_all(service=service)
    if as_json:
        print_json(summary.to_dict())
    else:
        print_dict(summary.to_dict(), title="Poll")
    if summary.errors:
        raise typer.Exit(code=1)


@app.command("next-run")
def next_run_cmd(
    schedule_type: ScheduleType = typer.Argument(..., help="minutely, hourly, daily, weekly, monthly"),
    hour: int | None = typer.Option(None, "--hour"),
    minute: int = typer.Option(0, "--minute"),
    day_of_week: int | None = typer.Option(None, "--day-of-week", help="0 = Sunday"),
    day_of_month: int | None = typer.Option(None, "--day-of-month"),
    timezone: str = typer.Option("UTC", "--timezone", "--tz"),
    now: str | None = typer.Option(None, "--now", help="ISO-8601 reference time (default: now)"),
    count: int = typer.Option(1, "--count", "-n", min=1, help="How many runs to list"),
    as_json: bool = JsonOption,
) -> None:
    """Preview upcoming run times of a schedule."""
    spec = ScheduleSpec(
        schedule_type=schedule_type,
        minute=minute,
        hour=hour,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        timezone=timezone,
    )
    cursor: datetime = from_iso8601(now) if now else utc_now()
    runs = []
    try:
        for _ in range(count):
            cursor = next_run(spec, cursor)
            runs.append(to_iso8601(cursor))
    except ZapflowError as exc:
        err_console.print(f"[bold red]Error[/bold red]: {exc.message}")
        raise typer.Exit(code=1) from exc

    if as_json:
        print_json(runs)
        return
    for value in runs:
        console.print(value)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    database: str | None = DatabaseOption,
    tickers: bool = typer.Option(False, "--tickers/--no-tickers", help="Run workers in-process"),
    interval: float = typer.Option(60.0, "--interval", help="Ticker interval in seconds"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the HTTP adapter (hooks, cron endpoints, health)."""
    import uvicorn

    from zapflow.api import create_app
    from zapflow.scheduling.backend import ThreadTickBackend

    container = make_container(database)
    workers: list[ZapflowContainer] = []
    backends: list[ThreadTickBackend] = []
    if tickers:
        jobs = {
            "zapflow-outbox": lambda c: c.worker.process_pending,
            "zapflow-schedules": lambda c: c.schedules.tick,
            "zapflow-poll": lambda c: c.poll_orchestrator.poll_all,
        }
        # one connection per ticker thread
        for name, job in jobs.items():
            worker = make_container(database)
            worker.init_db()
            backend = ThreadTickBackend(name)
            backend.start(job(worker), interval_seconds=interval)
            workers.append(worker)
            backends.append(backend)

    console.print(f"[bold green]Starting zapflow[/bold green] on {host}:{port}")
    try:
        uvicorn.run(create_app(container), host=host, port=port, log_level=log_level)
    finally:
        for backend in backends:
            backend.stop()
        for worker in workers:
            worker.close()
        container.close()


__all__ = ["app"]
