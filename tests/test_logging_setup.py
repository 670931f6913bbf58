"""Tests for logging setup."""

import logging
import sys

from apiproxy.logging import LOG_FORMAT, setup_logging


def test_setup_logging_installs_single_stdout_handler():
    logger = setup_logging(logging.DEBUG)
    logger = setup_logging(logging.DEBUG)

    try:
        assert logger.name == "apiproxy"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        handler = logger.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stdout
        assert handler.formatter._fmt == LOG_FORMAT
        assert logger.propagate is True
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


def test_module_loggers_are_children():
    assert logging.getLogger("apiproxy.http_forwarder").parent is logging.getLogger("apiproxy")
