"""Logging utilities."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Loggers that are noisy at DEBUG during a run
QUIET_LOGGERS = ("asyncio",)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Route log records to the terminal and, optionally, a file.

    Args:
        level: Console log level.
        log_file: Optional log file path; always written at DEBUG.
        console: Console shared with the progress display, so log lines are
            printed above live progress bars instead of through them.
    """
    if console is None:
        from .progress import console

    handlers = [
        RichHandler(
            console=console,
            level=level,
            rich_tracebacks=True,
            markup=False,  # file names may contain brackets
            show_path=False,
        )
    ]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
