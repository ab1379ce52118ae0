"""
Structured logging setup for the CLI.

Logs go to stderr so JSON written to stdout stays machine readable.
"""

import logging
import sys

import structlog


def setup_logging(verbose: bool = False, colors: bool = True) -> None:
    """
    Configure structlog for the process.

    Args:
        verbose: Log DEBUG and up; otherwise only warnings and errors
        colors: Use colored console output
    """
    level = logging.DEBUG if verbose else logging.WARNING

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
