"""Configuration loading and management."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from tracking.errors import ConfigError

from .config_models import PlacelogConfig


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / "placelog.yaml",
        Path.home() / ".placelog" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def default_config_path() -> Path:
    return Path.home() / ".placelog" / "config.yaml"


def load_config_model(config_path: Optional[Path] = None) -> PlacelogConfig:
    """Load configuration as Pydantic model with validation.

    Raises:
        ConfigError: unreadable YAML or values that fail validation.
    """
    base_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
        if not isinstance(base_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        return PlacelogConfig.from_dict(base_config)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed: {e}") from e


def save_config(config: PlacelogConfig, config_path: Optional[Path] = None) -> Path:
    """Write config back as YAML; returns the path written."""
    path = config_path or find_config() or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    return path


def get_paths(config: PlacelogConfig) -> dict:
    """Get expanded paths from config, creating their parent directories."""
    paths = {
        "db": config.paths.db,
        "status_file": config.paths.status_file,
        "log_file": config.paths.log_file,
    }
    for path in paths.values():
        path.parent.mkdir(parents=True, exist_ok=True)
    return paths
