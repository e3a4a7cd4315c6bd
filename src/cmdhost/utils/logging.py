"""Application logging setup.

Rich's :class:`~rich.logging.RichHandler` renders records on stderr when
``rich`` is importable; a plain formatter is used otherwise, so logging
never becomes a hard dependency of the bootstrap path.
"""

from __future__ import annotations

import logging
import os

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "INFORMATION": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}

PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def parse_level(level: str | int | None, default: int = logging.WARNING) -> int:
    """Map a level name (case-insensitive) or number to a logging level."""
    if level is None or level == "":
        return default
    if isinstance(level, int):
        return level
    return _LEVELS.get(level.strip().upper(), default)


def setup_logging(level: str | int | None = None) -> None:
    """Configure root logging once for the application.

    *level* falls back to ``CMDHOST_LOG_LEVEL`` and then ``WARNING``.
    """
    if level is None:
        level = os.getenv("CMDHOST_LOG_LEVEL")
    resolved = parse_level(level)

    try:
        from rich.console import Console
        from rich.logging import RichHandler
    except ModuleNotFoundError:
        logging.basicConfig(level=resolved, format=PLAIN_FORMAT, force=True)
        return

    logging.basicConfig(
        level=resolved,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
