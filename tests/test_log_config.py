import sys
from io import StringIO

import pytest
from loguru import logger

from tweetloom.log_config import configure_logging


def test_configure_logging_default_level_and_sink():
    """Test configure_logging with default INFO level and stderr sink."""
    logger.remove()  # Ensure clean state
    initial_handlers_count = len(logger._core.handlers)

    configure_logging()  # Defaults to INFO and sys.stderr

    assert len(logger._core.handlers) == initial_handlers_count + 1
    handler_id = list(logger._core.handlers.keys())[-1]
    handler = logger._core.handlers[handler_id]
    assert handler._levelno == logger.level("INFO").no


@pytest.mark.parametrize("level", ["DEBUG", "warning", "ERROR"])
def test_configure_logging_custom_level(level):
    """Test configure_logging honours the requested level, case-insensitively."""
    logger.remove()
    configure_logging(level=level)
    handler_id = list(logger._core.handlers.keys())[-1]
    handler = logger._core.handlers[handler_id]
    assert handler._levelno == logger.level(level.upper()).no


def test_configure_logging_removes_existing_handlers():
    """Test that configure_logging removes pre-existing handlers."""
    logger.remove()
    logger.add(lambda _: None, level="ERROR")
    assert len(logger._core.handlers) == 1

    configure_logging(level="INFO")

    assert len(logger._core.handlers) == 1


def test_configure_logging_writes_to_custom_sink():
    """Messages from library modules end up in the configured sink."""
    sink = StringIO()
    configure_logging(level="DEBUG", sink=sink)

    from tweetloom.store import EntityCache

    EntityCache(max_size=10)

    output = sink.getvalue()
    assert "Loguru logger configured with level=DEBUG" in output
    assert "EntityCache initialized (LRU max 10 per kind)." in output


def test_configure_logging_filters_below_level():
    sink = StringIO()
    configure_logging(level="WARNING", sink=sink)

    logger.info("quiet")
    logger.warning("loud")

    output = sink.getvalue()
    assert "quiet" not in output
    assert "loud" in output


def test_configure_logging_can_pass_only_library_records():
    sink = StringIO()
    configure_logging(level="DEBUG", sink=sink, library_only=True)

    from tweetloom.store import EntityCache

    logger.info("from the application")
    EntityCache(max_size=3)

    output = sink.getvalue()
    assert "from the application" not in output
    assert "EntityCache initialized (LRU max 3 per kind)." in output


@pytest.fixture(autouse=True)
def reset_logger_after_test():
    """Fixture to reset Loguru to a default state after each test in this module."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="INFO")  # Restore a basic default handler
