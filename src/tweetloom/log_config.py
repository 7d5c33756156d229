# tweetloom/log_config.py
"""Logging configuration for the tweetloom client using Loguru.

Every module logs through the ``logger`` re-exported here, so a single call to
``configure_logging`` controls the output of pagination, cache and stream code.
Stream consumers log each skipped record at WARNING; raise the level to
ERROR to silence them.
"""

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def _from_tweetloom(record) -> bool:
    return record["name"] is not None and record["name"].split(".")[0] == "tweetloom"


def configure_logging(level: str = "INFO", sink=sys.stderr, *, library_only: bool = False):
    """
    Configures Loguru logger.

    Removes existing handlers and adds a new one with the specified level and sink.

    Args:
        level: The minimum logging level (e.g., "DEBUG", "INFO", "WARNING").
        sink: The output sink (e.g., sys.stderr, "tweetloom.log").
        library_only: Only pass records logged from within tweetloom, leaving
            an application's own records to its other handlers.
    """
    logger.remove()
    logger.add(
        sink,
        level=level.upper(),
        format=LOG_FORMAT,
        filter=_from_tweetloom if library_only else None,
        colorize=sink is sys.stderr,
        backtrace=True,
        diagnose=False,
    )
    logger.info(
        f"Loguru logger configured with level={level.upper()} writing to {sink}"
    )
