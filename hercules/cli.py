"""CLI for the Hercules active schedule.

Developer CLI that runs the same service code path as the HTTP API against
the configured database.
"""

import json
import sys
from datetime import date
from pathlib import Path

import typer
import uvicorn
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from hercules.config.settings import settings
from hercules.core.logger import setup_logger
from hercules.db.session import init_db
from hercules.schedule.dates import parse_date_key
from hercules.schedule.errors import ScheduleRepositoryError
from hercules.schedule.service import ScheduleDraft, ScheduleService
from hercules.schedule.types import ScheduleResolution

console = Console()

app = typer.Typer(
    name="hercules",
    help="Hercules schedule CLI - resolve and edit the active workout schedule",
    add_completion=False,
)

UserOption = typer.Option(None, "--user-id", "-u", help="User ID (defaults to DEFAULT_USER_ID)")


@app.callback()
def main(debug: bool = typer.Option(False, "--debug", help="Enable debug logging")) -> None:
    setup_logger(level="DEBUG" if debug else settings.log_level, log_file=settings.log_file)


def _service(user_id: str | None) -> ScheduleService:
    return ScheduleService(user_id or settings.default_user_id).load()


def _parse_date(value: str) -> date:
    try:
        return parse_date_key(value)
    except ValueError:
        console.print(f"[red]Invalid date {value!r}, expected YYYY-MM-DD[/red]")
        raise typer.Exit(code=2) from None


def _render(service: ScheduleService, resolutions: list[ScheduleResolution], title: str) -> None:
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Workout")
    table.add_column("Label")
    table.add_column("Source")
    for resolution in resolutions:
        table.add_row(
            resolution.date,
            service.catalog.workout_name(resolution.workout_id),
            resolution.label,
            resolution.source,
        )
    console.print(table)


@app.command()
def server(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Run the schedule HTTP API."""
    logger.info(f"Starting FastAPI server on {host}:{port} (reload={reload})")
    uvicorn.run("hercules.main:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db_command() -> None:
    """Create the schedule tables."""
    init_db()
    console.print("[green]Database tables ready[/green]")


@app.command()
def today(user_id: str | None = UserOption) -> None:
    """Show the workout due today."""
    service = _service(user_id)
    _render(service, [service.today()], "Today")


@app.command()
def week(
    start: str | None = typer.Option(None, "--start", help="First day (YYYY-MM-DD), defaults to today"),
    user_id: str | None = UserOption,
) -> None:
    """Show the next seven days."""
    service = _service(user_id)
    _render(service, service.week(_parse_date(start) if start else None), "Week")


@app.command()
def summary(user_id: str | None = UserOption) -> None:
    """Describe the active schedule."""
    schedule_summary = _service(user_id).get_schedule_summary()
    console.print(f"[bold]{schedule_summary.type_label}[/bold] - {schedule_summary.description}")


@app.command()
def save(
    draft_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON schedule draft"),
    user_id: str | None = UserOption,
) -> None:
    """Save a schedule draft from a JSON file."""
    try:
        draft = ScheduleDraft.model_validate(json.loads(draft_file.read_text()))
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Invalid draft: {e}[/red]")
        raise typer.Exit(code=2) from None

    if not _service(user_id).save_schedule(draft):
        console.print("[red]Schedule was not saved[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Saved {draft.type} schedule[/green]")


@app.command()
def override(
    date: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    workout_id: str | None = typer.Option(None, "--workout-id", "-w", help="Workout ID, omit for a rest day"),
    note: str | None = typer.Option(None, "--note", help="Optional label"),
    user_id: str | None = UserOption,
) -> None:
    """Override the workout for one date."""
    target = _parse_date(date)
    if not _service(user_id).add_override(target, workout_id, note):
        console.print("[red]Override was not saved (is a schedule active?)[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Override set for {date}[/green]")


@app.command("clear-override")
def clear_override(
    date: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    user_id: str | None = UserOption,
) -> None:
    """Remove the override for one date."""
    target = _parse_date(date)
    if not _service(user_id).remove_override(target):
        console.print(f"[yellow]No override removed for {date}[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]Override removed for {date}[/green]")


@app.command()
def advance(user_id: str | None = UserOption) -> None:
    """Advance a plan-driven schedule to its next workout."""
    service = _service(user_id)
    if not service.advance_rotation():
        console.print("[yellow]Nothing to advance (no pointer-driven rotation)[/yellow]")
        raise typer.Exit(code=1)
    _render(service, [service.today()], "Next workout")


def run() -> None:
    try:
        app()
    except ScheduleRepositoryError as e:
        logger.error(f"Schedule storage error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
