"""Loguru helpers for applications embedding the socketapi client."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_SINK_IDS: dict[str, int] = {}

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss.SSS}</dim> | <level>{level: <8}</level> | <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def configure_logging(level: str = "INFO", *, debug: bool = False, log_file: str | None = None) -> Path | None:
    """Replace the default sink with a console sink and enable socketapi logs.

    With ``debug`` every frame and heartbeat is printed. ``log_file`` adds a
    rotating file sink under ~/.socketapi/logs/<log_file>.log.
    """
    effective = "DEBUG" if debug else level
    logger.remove()
    _SINK_IDS.clear()
    logger.add(sys.stderr, level=effective, format=CONSOLE_FORMAT)
    logger.enable("socketapi")
    if log_file:
        return ensure_rotating_log_file(log_file, level=effective)
    return None


def disable_logging() -> None:
    """Silence every logger call made from the socketapi package."""
    logger.disable("socketapi")


def log_dir() -> Path:
    return Path.home() / ".socketapi" / "logs"


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Route socketapi records to ~/.socketapi/logs/<name>.log, once per name.

    Only records from the ``socketapi`` package reach the file, so an
    application that adds its own sinks keeps its logs separate.
    """
    path = log_dir() / f"{name}.log"
    if name not in _SINK_IDS:
        path.parent.mkdir(parents=True, exist_ok=True)
        _SINK_IDS[name] = logger.add(
            path,
            level=level,
            filter="socketapi",
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="14 days",
            encoding="utf-8",
        )
    return path
