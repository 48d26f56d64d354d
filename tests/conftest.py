# tests/conftest.py
import logging

import pytest


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers a CLI run attached to the package logger."""
    yield
    logger = logging.getLogger("llmagent")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
