"""Logging setup for readtop."""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(
    name: str = "readtop",
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Configure the readtop logger.

    Records go to stderr unless another handler is given, so the interval
    report keeps stdout to itself. Calling this again replaces the handler
    instead of stacking a second one.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)

    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(handler)
    logger.propagate = False

    return logger
