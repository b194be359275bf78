"""Logging setup for cchud.

The live dashboard owns the terminal, so diagnostics normally go to a log
file. Non-live commands log to stderr through Rich instead.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING", log_file: Path | None = None) -> logging.Logger:
    """Configure the ``cchud`` logger hierarchy.

    Args:
        level: Log level name or number.
        log_file: Write to this file instead of stderr when given.

    Returns:
        The package root logger.
    """
    logger = logging.getLogger("cchud")
    logger.setLevel(level if isinstance(level, int) else level.upper())

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    handler: logging.Handler
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    logger.addHandler(handler)
    return logger
