"""Permission CLI commands: answer the 'always' location prompt."""

import click
from rich.console import Console

from cli.utils import get_components
from shared_types import AuthorizationState

console = Console()


@click.group()
def permission():
    """Inspect or decide location permission."""
    pass


@permission.command("status")
@click.pass_obj
def permission_status(obj):
    """Show the current permission state."""
    c = get_components((obj or {}).get("config_path"))
    state = c["permissions"].current_state()
    color = "green" if state == AuthorizationState.ALWAYS else "yellow"
    console.print(f"[{color}]{state}[/]")
    if c["permissions"].upgrade_requested_at():
        console.print("Background sampling asked for 'always'. Answer with: placelog permission grant always")


@permission.command("grant")
@click.argument("state", type=click.Choice([s.value for s in AuthorizationState]))
@click.pass_obj
def permission_grant(obj, state: str):
    """Set the permission state (e.g. 'always', 'when_in_use', 'denied')."""
    c = get_components((obj or {}).get("config_path"))
    c["permissions"].set_state(AuthorizationState(state))
    console.print(f"[green]Permission set to {state}[/]")
