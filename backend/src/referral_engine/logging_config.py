"""Logging configuration."""

import logging
import sys

import structlog

from referral_engine.settings import settings


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structured logging.

    Args:
        level: Log level override (defaults to settings.log_level)
        fmt: "json" or "console" override (defaults to settings.log_format)

    Every event carries the app name and environment as bound context.
    """
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if fmt == "json":
        processors = shared + [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(app=settings.app_name, env=settings.env)

    # SQLAlchemy, uvicorn and slowapi log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level))


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
