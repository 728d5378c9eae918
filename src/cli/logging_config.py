"""Structured logging for the CLI and the daemon (structlog over stdlib logging)."""

import logging
import re
import sys
from pathlib import Path
from typing import Optional

import structlog

# Coordinates keep ~100 m of precision ("33.24119, 130.28441", "lat=33.24119")
_COORDINATE_PAIR = re.compile(r"(-?\d{1,3}\.\d{3})\d+(\s*,\s*-?\d{1,3}\.\d{3})\d+")
_COORDINATE_KV = re.compile(r"((?:lat|lon|latitude|longitude)[=:]\s*-?\d{1,3}\.\d{3})\d+")
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_COORDINATE_KEYS = {"latitude", "longitude", "lat", "lon"}

# Floor levels for chatty libraries; httpx request lines carry the query string.
_LIBRARY_FLOORS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "apscheduler": logging.INFO,
}


def _coarsen(text: str) -> str:
    text = _COORDINATE_PAIR.sub(r"\1\2", text)
    text = _COORDINATE_KV.sub(r"\1", text)
    return _EMAIL.sub("REDACTED@email", text)


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Structlog processor: round coordinate fields and scrub strings."""
    for key, value in event_dict.items():
        if key in _COORDINATE_KEYS and isinstance(value, float):
            event_dict[key] = round(value, 3)
        elif isinstance(value, str):
            event_dict[key] = _coarsen(value)
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive,
    ]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def setup_logging(json_mode: bool = False, level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure structlog and the root logger.

    Args:
        json_mode: JSON lines on stderr instead of the console renderer.
        level: Log level name.
        log_file: Daemon history; always JSON lines regardless of ``json_mode``.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[*_shared_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stderr_renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    handlers[0].setFormatter(_formatter(stderr_renderer))

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    root = logging.getLogger()
    for old in root.handlers:
        if isinstance(old, logging.FileHandler):
            old.close()
    root.handlers = handlers
    root.setLevel(log_level)

    for name, floor in _LIBRARY_FLOORS.items():
        logging.getLogger(name).setLevel(max(log_level, floor))
