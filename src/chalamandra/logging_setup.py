"""Logging configuration for Chalamandra.

Library modules only call ``logging.getLogger(__name__)``. The CLI calls
setup_logging() once to decide where records go: a Rich console handler on
stderr, plus a plain file handler when debugging. Both redact credentials.

Message text never appears in logs; modules log lengths, identifier counts
and backend outcomes instead.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from chalamandra.ai.client import RedactingFilter

PACKAGE_LOGGER = "chalamandra"

# SDK and HTTP libraries that log every request at INFO
THIRD_PARTY_LOGGERS = ("google", "grpc", "httpx", "httpcore", "urllib3", "keyring", "asyncio")

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(level: str = "WARNING", log_file: Path | None = None) -> logging.Logger:
    """Route package logs to stderr and, optionally, a file.

    Calling it again replaces the handlers from the previous call.

    Args:
        level: Level name for the package logger and its handlers.
        log_file: Also write records here (parent directories are created).

    Returns:
        The package logger.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for old in list(package_logger.handlers):
        package_logger.removeHandler(old)
        old.close()

    handlers: list[logging.Handler] = [
        RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
    ]
    if log_file is not None:
        handlers.append(_file_handler(log_file))

    redact = RedactingFilter()
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.addFilter(redact)
        package_logger.addHandler(handler)

    package_logger.setLevel(numeric_level)
    package_logger.propagate = False

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    package_logger.debug(f"Logging at {logging.getLevelName(numeric_level)}, file={log_file}")
    return package_logger
