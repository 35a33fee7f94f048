"""Logging configuration for TADA."""

import logging
import sys

import structlog

from tada.config import get_settings


def _use_console_renderer(development: bool) -> bool:
    # Under systemd stdout is the journal, which wants one JSON object per line.
    return development or sys.stdout.isatty()


def setup_logging(level: str | None = None) -> None:
    """Configure structured logging.

    Args:
        level: Optional level name overriding ``TADA_LOG_LEVEL``.
    """
    settings = get_settings()

    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
                if _use_console_renderer(settings.is_development)
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Also configure standard library logging for aiohttp/httpx
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    # Access logs are noise for a webhook agent; results are logged per request
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
