import logging

import pytest


@pytest.fixture(autouse=True)
def restore_root_logger():
    """CLI commands reconfigure the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
