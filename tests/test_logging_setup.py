"""Tests for chatwire.logging_setup."""

from __future__ import annotations

import io
import logging

import pytest
from rich.console import Console
from rich.logging import RichHandler

from chatwire.config import LoggingConfig
from chatwire.logging_setup import configure_logging


@pytest.fixture
def chatwire_logger():
    logger = logging.getLogger("chatwire")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


class TestConfigureLogging:
    def test_installs_rich_handler(self, chatwire_logger):
        buf = io.StringIO()
        configure_logging(LoggingConfig(level="info"), Console(file=buf, width=120))

        handlers = [h for h in chatwire_logger.handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert chatwire_logger.level == logging.INFO

        logging.getLogger("chatwire.llm.registry").info("created provider xyz")
        assert "created provider xyz" in buf.getvalue()

    def test_reconfigure_replaces_handler(self, chatwire_logger):
        configure_logging(LoggingConfig(level="DEBUG"), Console(file=io.StringIO()))
        configure_logging(LoggingConfig(level="ERROR"), Console(file=io.StringIO()))

        handlers = [h for h in chatwire_logger.handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert chatwire_logger.level == logging.ERROR

    def test_unknown_level_falls_back_to_warning(self, chatwire_logger):
        configure_logging(LoggingConfig(level="LOUD"), Console(file=io.StringIO()))
        assert chatwire_logger.level == logging.WARNING
