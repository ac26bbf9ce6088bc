"""Logging for the AREA workflow engine.

Engine records live under the ``area_engine`` namespace and go to a rich
console handler, plus an optional rotating file. The HTTP and scheduler
libraries log every request and job run at INFO, so they are held at
WARNING unless the engine itself runs at DEBUG.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import LoggingConfig

_ROOT_NAMESPACE = "area_engine"

_loggers: dict[str, logging.Logger] = {}
_current_level: int = logging.INFO

console = Console()


def _release_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        with suppress(Exception):
            handler.flush()
        with suppress(Exception):
            handler.close()
    root.handlers.clear()


def _file_handler(config: LoggingConfig, level: int) -> RotatingFileHandler:
    path = Path(config.log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(config.format))
    return handler


def _tune_libraries(config: LoggingConfig, level: int) -> None:
    library_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in config.quiet_libraries:
        logging.getLogger(name).setLevel(library_level)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure root handlers, engine logger levels and library noise.

    Safe to call repeatedly; previous handlers are closed first.

    Args:
        config: LoggingConfig instance. If None, uses defaults.
    """
    global _current_level

    config = config or LoggingConfig()
    level = getattr(logging, config.level)

    root = logging.getLogger()
    _release_handlers(root)
    root.setLevel(level)
    logging.getLogger(_ROOT_NAMESPACE).setLevel(level)

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=level <= logging.DEBUG,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    root.addHandler(console_handler)
    if config.log_file:
        root.addHandler(_file_handler(config, level))

    _tune_libraries(config, level)

    _current_level = level
    for engine_logger in _loggers.values():
        engine_logger.setLevel(level)

    get_logger("setup").info(
        "Logging configured: level=%s file=%s", config.level, config.log_file or "-"
    )


def get_logger(name: str) -> logging.Logger:
    """Return the engine logger ``area_engine.<name>``, created on first use."""
    if name not in _loggers:
        engine_logger = logging.getLogger(f"{_ROOT_NAMESPACE}.{name}")
        engine_logger.setLevel(_current_level)
        _loggers[name] = engine_logger
    return _loggers[name]
