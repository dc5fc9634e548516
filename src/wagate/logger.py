"""Structured logging for wagate.

Configured at import from LOG_LEVEL in the environment, because modules log
before Settings exist. The app calls ``set_level`` once Settings have loaded
so a level coming from ``.env`` applies too.

A terminal gets colored console lines; anything else (a container, a log
shipper) gets one JSON object per line.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _renderers(stream: TextIO) -> list[structlog.types.Processor]:
    if stream.isatty():
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def _setup_logging(stream: TextIO = sys.stderr) -> structlog.stdlib.BoundLogger:
    # stdlib root logger first: filter_by_level reads its level on every call
    logging.basicConfig(
        level=_level(os.environ.get("LOG_LEVEL", "INFO")),
        format="%(message)s",
        stream=stream,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_renderers(stream),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("wagate")


logger = _setup_logging()


def set_level(level_name: str) -> None:
    logging.getLogger().setLevel(_level(level_name))


def _log_uncaught(exc_type: type[BaseException], exc_value: BaseException, exc_tb: object) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _log_uncaught
