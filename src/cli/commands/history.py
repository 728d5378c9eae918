"""History CLI command: the recorded-place timeline."""

from datetime import datetime, time, timedelta

import click
from rich.console import Console
from rich.table import Table

from cli.utils import format_coordinate, get_components

console = Console()


@click.command()
@click.option("-n", "--limit", default=20, help="Max records to show")
@click.option(
    "--date",
    "day",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Only records from this local day (YYYY-MM-DD)",
)
@click.pass_obj
def history(obj, limit: int, day: datetime):
    """Show recorded places, newest first."""
    c = get_components((obj or {}).get("config_path"))
    user_id = c["config_model"].tracking.user_id

    if day:
        start = datetime.combine(day.date(), time.min).astimezone()
        records = c["store"].query_between(user_id, start, start + timedelta(days=1))
        records = list(reversed(records))[:limit]
    else:
        records = c["store"].query_recent(user_id, limit=limit)

    if not records:
        console.print("[yellow]No places recorded yet.[/]")
        return

    table = Table(show_header=True)
    table.add_column("Time", style="cyan")
    table.add_column("Place")
    table.add_column("Category", style="green")
    table.add_column("Coordinate", style="dim")

    for r in records:
        when = r["recorded_at"].astimezone().strftime("%Y-%m-%d %H:%M")
        table.add_row(when, r["place_name"], r["category"], format_coordinate(r["latitude"], r["longitude"]))

    console.print(table)
