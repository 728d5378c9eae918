"""Shared CLI utilities."""

import sys
from pathlib import Path
from typing import Optional

import structlog
from rich.console import Console

from tracking.errors import ConfigError

console = Console()
logger = structlog.get_logger()


def load_config_or_exit(config_path: Optional[Path] = None):
    """Load the config model, printing the validation error and exiting on failure."""
    from cli.config import load_config_model

    try:
        return load_config_model(config_path)
    except ConfigError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)


def get_components(config_path: Optional[Path] = None):
    """Initialize storage components from config.

    Providers and the scheduler are not built here; commands that run
    activations use ``build_service``.
    """
    from cli.config import get_paths
    from tracking.permissions import PermissionStore
    from tracking.storage import LocationStore

    config_model = load_config_or_exit(config_path)
    paths = get_paths(config_model)

    return {
        "config_model": config_model,
        "config_path": config_path,
        "paths": paths,
        "store": LocationStore(paths["db"]),
        "permissions": PermissionStore(paths["db"]),
    }


def build_service(config_path: Optional[Path] = None):
    """Build a TrackingService whose watcher re-reads the same config file."""
    from cli.config import get_paths, load_config_model
    from tracking.service import TrackingService

    config_model = load_config_or_exit(config_path)
    get_paths(config_model)
    return TrackingService(config_model, config_loader=lambda: load_config_model(config_path))


def format_coordinate(latitude: float, longitude: float) -> str:
    return f"{latitude:.4f}, {longitude:.4f}"
