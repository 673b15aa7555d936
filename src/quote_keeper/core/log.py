"""Process-wide log handler setup.

Library modules only ever call ``logging.getLogger(__name__)``. Entry points
(the CLI, the uvicorn app factory) call :func:`configure_logging` once to
decide where records go.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from quote_keeper.core.config import LoggingConfig

ROOT_LOGGER = "quote_keeper"

_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Attach a console or rotating-file handler to the package logger.

    Calling this again replaces the handler installed by the previous call.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(config.level)

    for handler in list(logger.handlers):
        if getattr(handler, "_quote_keeper", False):
            logger.removeHandler(handler)
            handler.close()

    handler: logging.Handler
    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    else:
        handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    handler._quote_keeper = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False
    return logger
