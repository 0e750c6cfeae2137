"""Logging setup for the command-line tools."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "qrm_toolkit"


def setup_logging(level: str = "INFO", console: Console | None = None) -> logging.Logger:
    """
    Attach a rich handler to the package logger.

    Library modules only create loggers; handlers are installed here, once,
    by whichever entry point wants output.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...).
        console: Optional rich Console to write to (defaults to stderr).
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
