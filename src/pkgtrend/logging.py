"""Logging configuration for pkgtrend."""

import logging
import sys

# Package logger shared by every pkgtrend module
logger = logging.getLogger("pkgtrend")

# Default format for console output
DEFAULT_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(levelname)s: %(name)s: %(message)s"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the pkgtrend logger for CLI use.

    Args:
        verbose: Show DEBUG messages (skipped timestamps, cache hits).
        quiet: Only show warnings and errors, e.g. failed fetches.
    """
    logger.handlers.clear()

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level)
