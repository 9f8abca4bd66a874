"""
Structured logging setup.

Call configure_logging() once at process start (CLI scripts, workers).
"""

import logging

import structlog

from config.settings import settings


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and structlog processors."""
    log_level = (level or settings.log_level).upper()

    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if settings.is_production
                else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
