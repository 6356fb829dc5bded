"""Structured logging setup.

Library code logs through ``structlog.get_logger()`` and binds key/value
context at each call site; only the process entry point configures output.
"""

import logging

import structlog

from integration_auth.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog processors and level from settings."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if not settings.debug else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
