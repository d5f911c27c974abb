"""
Logging configuration for the application.
"""
import logging
import sys
from typing import Any, Callable

import structlog

from cardprices.core.config import settings

# printf-style hook handed to scrapers: callback("format %s", arg)
LogCallback = Callable[..., None]


def setup_logging(debug: bool | None = None, json_output: bool | None = None):
    """
    Configure structured logging for the application.
    """
    if debug is None:
        debug = settings.log_debug
    if json_output is None:
        json_output = settings.log_json

    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            # JSON for log shipping, console otherwise
            structlog.processors.JSONRenderer()
            if json_output
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    """
    Get a structured logger.

    Args:
        name: Optional logger name.

    Returns:
        Structured logger instance.
    """
    return structlog.get_logger(name)


def structlog_callback(logger: Any = None, level: str = "info") -> LogCallback:
    """
    Adapt a structlog logger to the scraper LogCallback signature.

    The formatted line becomes the event; args are interpolated the
    same way the logging module does it.
    """
    if logger is None:
        logger = get_logger("cardprices.scraper")
    emit = getattr(logger, level)

    def callback(fmt: str, *args: Any) -> None:
        message = fmt % args if args else fmt
        emit(message)

    return callback
