"""Settings CLI commands: the tracking switch and sampling frequency."""

import click
from rich.console import Console

from cli.config import save_config
from cli.utils import get_components

console = Console()


def _save(obj, config) -> None:
    path = save_config(config, (obj or {}).get("config_path"))
    console.print(f"[dim]Saved {path}; a running daemon picks this up on its next config poll.[/]")


@click.group()
def settings():
    """View and change tracking settings."""
    pass


@settings.command("show")
@click.pass_obj
def settings_show(obj):
    """Show the effective tracking settings."""
    c = get_components((obj or {}).get("config_path"))
    config = c["config_model"]
    console.print(f"tracking: {'on' if config.tracking.enabled else 'off'}")
    console.print(f"frequency: every {config.tracking.frequency_minutes} min")
    console.print(f"user: {config.tracking.user_id}")
    console.print(f"fix provider: {config.fix_provider.kind}")
    console.print(
        f"dedup: {config.dedup.min_interval_seconds:.0f}s / {config.dedup.min_distance_meters:.0f}m"
    )
    console.print(f"database: {c['paths']['db']}")


@settings.command("tracking")
@click.argument("switch", type=click.Choice(["on", "off"]))
@click.pass_obj
def settings_tracking(obj, switch: str):
    """Turn background tracking on or off."""
    c = get_components((obj or {}).get("config_path"))
    config = c["config_model"]
    config.tracking.enabled = switch == "on"
    _save(obj, config)
    console.print(f"[green]Tracking {switch}[/]")


@settings.command("frequency")
@click.argument("minutes", type=click.Choice(["30", "60"]))
@click.pass_obj
def settings_frequency(obj, minutes: str):
    """Sample every 30 or 60 minutes, aligned to the clock."""
    c = get_components((obj or {}).get("config_path"))
    config = c["config_model"]
    config.tracking.frequency_minutes = int(minutes)
    _save(obj, config)
    console.print(f"[green]Frequency set to {minutes} min[/]")
