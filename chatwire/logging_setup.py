"""Console logging for the chatwire CLI."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from chatwire.config import LoggingConfig

_HANDLER_ATTR = "_chatwire_handler"


def configure_logging(config: LoggingConfig, console: Console | None = None) -> None:
    """
    Route ``chatwire`` log records to stderr through a ``RichHandler``.

    Safe to call more than once; the previous chatwire handler is replaced.
    Library code never calls this, it only logs.
    """
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    logger = logging.getLogger("chatwire")
    for existing in list(logger.handlers):
        if getattr(existing, _HANDLER_ATTR, False):
            logger.removeHandler(existing)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter(config.format))
    setattr(handler, _HANDLER_ATTR, True)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
