"""Root pytest configuration for all tests."""

import logging

import pytest

# Keep request debug output of urllib3 out of the test logs.
logging.getLogger("urllib3").setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def restore_app_logger():
    """Remove handlers the CLI attaches to the 'src' logger during a test."""
    app_logger = logging.getLogger("src")
    handlers = list(app_logger.handlers)
    level = app_logger.level
    yield
    for handler in app_logger.handlers:
        if handler not in handlers:
            handler.close()
    app_logger.handlers = handlers
    app_logger.setLevel(level)
