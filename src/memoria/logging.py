"""
Logging configuration module for the Memoria knowledge base.

Library modules only call ``structlog.get_logger(__name__)``; the embedding
application calls ``configure_logging`` once to pick level and output.
"""

import logging

import structlog

from .config import Settings
from .config import settings as default_settings


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog for the application.

    Uses ConsoleRenderer for readable colored output in development, or one
    JSON object per line when ``settings.log_json`` is set.

    Args:
        settings: Source of ``log_level`` and ``log_json``; defaults to the
            global settings
    """
    settings = settings or default_settings
    renderer = structlog.processors.JSONRenderer() if settings.log_json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(settings.log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
