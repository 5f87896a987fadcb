"""Logging setup for scaperf.

Benchmark progress goes to the console at INFO so that long runs show
signs of life; the optional log file always records DEBUG output,
including the exact commands run for every build and clean.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

_LOGGER_NAME = "scaperf"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure and return the root scaperf logger.

    Args:
        verbose: Show DEBUG messages on the console.
        quiet: Only show warnings and errors. Ignored if *verbose* is set.
        log_file: If given, also write everything at DEBUG to this file.
        stream: Console stream (defaults to stderr).

    Returns:
        The ``scaperf`` logger.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Reconfiguring (e.g. several CLI invocations in one test process)
    # must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream)
    console.setLevel(_console_level(verbose, quiet))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``scaperf.<name>`` child logger."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
