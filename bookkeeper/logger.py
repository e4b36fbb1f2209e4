"""
Structured Logging

Every module logs through structlog with an event name and key/value
context (e.g. ``logger.warning("storage_write_failed", collection=..., error=...)``).

configure_logging() is idempotent and is called by the application
factory; get_logger() can be used at import time because structlog
binds lazily.
"""

import logging
from typing import Optional

import structlog


_configured = False


def configure_logging(debug: Optional[bool] = None) -> None:
    """
    Configure structlog for the process.

    Debug mode renders human-readable console lines,
    otherwise every event is a JSON object.
    """
    global _configured
    if _configured:
        return

    if debug is None:
        from bookkeeper.config import get_settings
        debug = get_settings().app.debug_mode

    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if debug
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: Optional[str] = None):
    """Get a structlog logger bound to a module name."""
    return structlog.get_logger(name)
