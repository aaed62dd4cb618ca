"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production and pretty console logs for
development. Request ids bound by the API middleware appear on every line
logged while the request is handled.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from social_proxy.config.settings import get_settings
from social_proxy.observability.tracing import add_trace_context, is_tracing_enabled


def setup_logging() -> None:
    """
    Configure structured logging for the application.

    In production: JSON-formatted logs (easy to parse in log aggregators)
    In development: Pretty console output with colors

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Proxy cache miss", source_key="twitter:jack:anon")
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if is_tracing_enabled():
        shared_processors.append(add_trace_context)

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    # Set log levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind context variables to all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
