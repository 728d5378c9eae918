"""Status CLI command."""

import json
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from tracking.scheduler import next_aligned_boundary

console = Console()


def _read_status_file(path) -> dict:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}


@click.command()
@click.option("-n", "--limit", default=5, help="Recent activations to show")
@click.pass_obj
def status(obj, limit: int):
    """Show schedule, permission state and recent activations."""
    c = get_components((obj or {}).get("config_path"))
    tracking = c["config_model"].tracking

    console.print("\n[bold]Tracking[/]")
    if tracking.enabled:
        boundary = next_aligned_boundary(datetime.now().astimezone(), tracking.frequency_minutes)
        console.print(f"  [green]on[/], every {tracking.frequency_minutes} min")
        console.print(f"  next slot: {boundary:%Y-%m-%d %H:%M}")
    else:
        console.print("  [yellow]off[/]")

    state = c["permissions"].current_state()
    console.print("\n[bold]Permission[/]")
    console.print(f"  {state}")
    requested = c["permissions"].upgrade_requested_at()
    if requested:
        console.print(f"  [yellow]'always' requested at {requested[:19]}[/] (placelog permission grant)")

    console.print("\n[bold]Records[/]")
    console.print(f"  {c['store'].count(tracking.user_id)} places for user {tracking.user_id}")

    last = _read_status_file(c["paths"]["status_file"])
    if last:
        console.print("\n[bold]Last activation[/]")
        console.print(f"  {last.get('status')} at {str(last.get('timestamp', '?'))[:19]}")
        if last.get("next_activation"):
            console.print(f"  next requested: {last['next_activation'][:16]}")

    runs = c["store"].recent_activations(limit=limit)
    if not runs:
        return

    table = Table(show_header=True)
    table.add_column("Started", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for run in runs:
        style = "green" if run["success"] else "red"
        table.add_row(run["started_at"][:19], f"[{style}]{run['status']}[/]", (run["detail"] or "")[:50])
    console.print()
    console.print(table)
