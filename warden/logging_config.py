"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from warden.config import get_settings

# Chatty stdlib loggers; APScheduler logs every health-check run at INFO.
QUIET_LOGGERS = ("apscheduler", "httpx", "httpcore")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured logging for the supervisor process.

    Logs go to stderr so the CLI's own output on stdout stays readable.
    """
    settings = get_settings()
    level_name = (level or settings.warden_log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    if settings.is_production:
        renderer = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            *renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
    structlog.contextvars.bind_contextvars(env=settings.warden_env)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)
