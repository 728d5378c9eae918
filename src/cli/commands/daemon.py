"""Daemon CLI commands."""

import time

import click
from rich.console import Console

from cli.logging_config import setup_logging
from cli.utils import build_service
from shared_types import AuthorizationState

console = Console()

_daemon_service = None


def _print_outcome(outcome) -> None:
    color = "green" if outcome.success else "red"
    console.print(f"[{color}]{outcome.status}[/] {outcome.detail}")


@click.group()
def daemon():
    """Manage background location sampling."""
    pass


@daemon.command("start")
@click.pass_obj
def daemon_start(obj):
    """Start the background scheduler; Ctrl+C stops it."""
    global _daemon_service
    config_path = (obj or {}).get("config_path")

    if _daemon_service is not None:
        console.print("[yellow]Daemon already running[/]")
        return

    service = build_service(config_path)
    setup_logging(
        json_mode=service.config.logging.json_output,
        level=service.config.logging.level,
        log_file=service.config.paths.log_file,
    )
    _daemon_service = service
    next_activation = service.start()

    state = service.permissions.current_state()
    if state != AuthorizationState.ALWAYS:
        console.print(
            f"[yellow]Location permission is '{state}'.[/] "
            "Run [bold]placelog permission grant always[/] to allow background sampling."
        )
    if next_activation:
        console.print(
            f"[green]Started[/] next activation at {next_activation.earliest_begin:%Y-%m-%d %H:%M} "
            f"(every {next_activation.frequency_minutes} min)"
        )
    else:
        console.print("[yellow]Started[/] with tracking disabled; waiting for config changes")
    console.print("Press Ctrl+C to stop")

    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        _daemon_service.stop()
        _daemon_service = None
        console.print("\n[yellow]Stopped[/]")


@daemon.command("run-once")
@click.pass_obj
def daemon_run_once(obj):
    """Run one activation now (for cron/launchd integration)."""
    service = build_service((obj or {}).get("config_path"))
    outcome = service.run_once()
    _print_outcome(outcome)
    if not outcome.success:
        raise SystemExit(1)
