"""Structured logging setup."""

import logging

import structlog

from lorawatch.core.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure stdlib logging and structlog once at startup.

    Development gets colored console output, everything else renders JSON
    lines so log shippers can index the event fields.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")

    use_json = settings.log_json
    if use_json is None:
        use_json = settings.environment != "development"

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
