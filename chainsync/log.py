"""
Logging setup for applications embedding chainsync.

The library only asks ``structlog`` for loggers, it never configures
logging on import. Call :func:`configure_logging` once at startup.
"""

import logging
import structlog


def configure_logging(level: int | str = logging.INFO, json: bool = False):
    """
    Configure ``structlog`` processors.

    Args:
        level: minimum log level (``logging.INFO``, ``"DEBUG"``, ...)
        json: render lines as json instead of the console format
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
