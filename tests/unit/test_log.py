"""Tests for quote_keeper.core.log."""

import logging
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler

from quote_keeper.core.config import LoggingConfig
from quote_keeper.core.log import ROOT_LOGGER, configure_logging


def test_console_handler_by_default():
    logger = configure_logging(LoggingConfig())
    assert logger.name == ROOT_LOGGER
    assert logger.level == logging.INFO
    assert [type(h) for h in logger.handlers] == [RichHandler]
    assert logger.propagate is False


def test_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "quote-keeper.log"
    logger = configure_logging(
        LoggingConfig(level="debug", file=str(log_file), max_bytes=1024, backup_count=2)
    )
    [handler] = logger.handlers
    assert isinstance(handler, RotatingFileHandler)
    assert handler.maxBytes == 1024
    assert handler.backupCount == 2

    logging.getLogger("quote_keeper.poll").debug("Received %d quotes", 5)
    handler.flush()
    assert "Received 5 quotes" in log_file.read_text()


def test_reconfigure_replaces_handler(tmp_path):
    configure_logging(LoggingConfig())
    logger = configure_logging(LoggingConfig(file=str(tmp_path / "q.log")))
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], RotatingFileHandler)


def test_foreign_handlers_kept():
    logger = logging.getLogger(ROOT_LOGGER)
    foreign = logging.NullHandler()
    logger.addHandler(foreign)
    configure_logging(LoggingConfig())
    assert foreign in logger.handlers
