"""placelog command line entry point."""

from pathlib import Path

import click

from cli.commands import daemon, history, lookup, permission, settings, status
from cli.logging_config import setup_logging
from cli.utils import load_config_or_exit


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ./placelog.yaml or ~/.placelog/config.yaml)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path, verbose: bool):
    """placelog - background place log."""
    config = load_config_or_exit(config_path)
    level = "DEBUG" if verbose else config.logging.level
    setup_logging(json_mode=config.logging.json_output, level=level)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


cli.add_command(daemon)
cli.add_command(history)
cli.add_command(status)
cli.add_command(settings)
cli.add_command(permission)
cli.add_command(lookup)


if __name__ == "__main__":
    cli()
