"""Command-line interface for Stretch Break."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer

from .client import BreakServiceClient
from .config import SchedulerSettings
from .errors import StretchBreakError
from .server_runner import DEFAULT_HOST, DEFAULT_PORT, run_service

app = typer.Typer(help="Break reminder that adapts to your real activity.")

DEFAULT_URL = os.environ.get("STRETCH_BREAK_URL", f"http://{DEFAULT_HOST}:{DEFAULT_PORT}")


class WidgetApiCommand(str, Enum):
    time_to_break = "time-to-break"
    time_to_reset = "time-to-reset"
    overtime = "overtime"
    presence_mode = "presence-mode"


@app.callback(no_args_is_help=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    url: str = typer.Option(DEFAULT_URL, "--url", help="Address of the running service."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ctx.obj = {"url": url}


@app.command()
def run(
    host: str = typer.Option(DEFAULT_HOST, "--host", help="Interface to bind the control API."),
    port: int = typer.Option(
        DEFAULT_PORT, "--port", min=1, max=65535, help="TCP port for the control API."
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the state database.",
    ),
    break_minutes: float = typer.Option(
        20.0, "--break-minutes", min=1.0, help="Minutes of activity between breaks."
    ),
    warning_seconds: float = typer.Option(
        15.0, "--warning-seconds", min=1.0, help="Warning period before a break."
    ),
    break_seconds: float = typer.Option(
        90.0, "--break-seconds", min=1.0, help="Length of a break in seconds."
    ),
    idle_reset_seconds: Optional[float] = typer.Option(
        None,
        "--idle-reset-seconds",
        min=1.0,
        help="Idle time that resets the countdown (defaults to the break length).",
    ),
    api: bool = typer.Option(
        True, "--api/--no-api", help="Serve the local control API alongside the scheduler."
    ),
) -> None:
    """Start the break scheduler in the foreground."""
    from .instance import AlreadyRunning

    try:
        settings = SchedulerSettings.from_intervals(
            break_minutes=break_minutes,
            warning_seconds=warning_seconds,
            break_seconds=break_seconds,
            idle_reset_seconds=idle_reset_seconds,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        if api:
            run_service(host=host, port=port, db_path=db_path, settings=settings)
        else:
            _run_headless(db_path, settings)
    except AlreadyRunning as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


@app.command("snooze-for")
def snooze_for(
    ctx: typer.Context,
    minutes: int = typer.Argument(..., help="Minutes to stop prompting for breaks."),
) -> None:
    """Stop prompting for breaks for the specified amount of minutes."""
    _send(ctx, lambda client: client.snooze_for(max(minutes, 0)))


@app.command()
def mute(
    ctx: typer.Context,
    minutes: Optional[float] = typer.Option(
        None, "--minutes", min=0.1, help="Unmute automatically after this many minutes."
    ),
) -> None:
    """Stop prompting for breaks until further notice."""
    _send(ctx, lambda client: client.mute(minutes))


@app.command()
def unmute(ctx: typer.Context) -> None:
    """Show break prompts again."""
    _send(ctx, lambda client: client.unmute())


@app.command("break")
def trigger_break(ctx: typer.Context) -> None:
    """Start a break right now."""
    _send(ctx, lambda client: client.trigger_break())


@app.command("skip-break")
def skip_break(ctx: typer.Context) -> None:
    """End the current break and restart the countdown."""
    _send(ctx, lambda client: client.skip_break())


@app.command()
def postpone(
    ctx: typer.Context,
    minutes: float = typer.Argument(..., min=0.1, help="Minutes until the next break."),
) -> None:
    """End the current break and take it again after a few minutes of activity."""
    _send(ctx, lambda client: client.postpone_break(minutes))


@app.command("set-reading-mode")
def set_reading_mode(
    ctx: typer.Context,
    value: bool = typer.Argument(..., help="When on, idle time won't reset the timer."),
) -> None:
    """Toggle reading mode."""
    _send(ctx, lambda client: client.set_reading_mode(value))


@app.command("widget-api")
def widget_api(ctx: typer.Context, command: WidgetApiCommand) -> None:
    """Status data for desktop widgets that read from terminal commands."""
    info = _send(ctx, lambda client: client.widget_info())
    typer.echo(widget_value(info, command), nl=False)


def widget_value(info: Dict[str, Any], command: WidgetApiCommand) -> str:
    if command is WidgetApiCommand.time_to_break:
        return info["normal_timer_value"]
    if command is WidgetApiCommand.time_to_reset:
        return info["countdown_to_reset_value"]
    if command is WidgetApiCommand.overtime:
        return info["overdue_value"]
    mode = info["presence_mode"]["type"]
    return mode if mode in ("snoozed", "muted") else "active"


def _send(
    ctx: typer.Context, call: Callable[[BreakServiceClient], Dict[str, Any]]
) -> Dict[str, Any]:
    client = BreakServiceClient(ctx.obj["url"])
    try:
        return call(client)
    except StretchBreakError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _run_headless(db_path: Optional[Path], settings: SchedulerSettings) -> None:
    from .instance import SingleInstance
    from .paths import get_pid_path
    from .webapp import build_service

    with SingleInstance(get_pid_path()):
        service, idle_sampler = build_service(db_path=db_path, settings=settings)
        idle_sampler.start()
        try:
            service.run_forever()
        finally:
            idle_sampler.stop()
