"""Structured logging setup."""

import logging
import sys

import structlog


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # Looked up per logger: sys.stderr may be swapped after configuration
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(verbosity: int = 0) -> None:
    """Configure structlog output level from a -v count.

    0 shows warnings and errors, 1 adds info, 2 or more adds debug.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
