"""
Structured logging configuration using structlog.

Output is either human-readable console text or one JSON object per line,
written to stderr or appended to a log file. Request handlers log through a
logger bound with the request's method, URL, client IP and request ID (see
``formauth.core.middleware``); everything else uses ``get_logger(__name__)``.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, cast

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from formauth.core.config import LogConfig

LOG_TYPES = ("text", "json")


def _drop_color_message_key(_logger: Any, _method_name: str, event_dict: EventDict) -> EventDict:
    # uvicorn duplicates the message with ANSI codes under this key
    event_dict.pop("color_message", None)
    return event_dict


def configure_logging(log_config: LogConfig) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        log_config: The ``Log`` section of the application configuration.
            Its level and type have already been validated.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _drop_color_message_key,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_config.type == "json":
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=not log_config.filename and sys.stderr.isatty())
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler: logging.Handler
    if log_config.filename:
        handler = logging.FileHandler(log_config.filename, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_config.level)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.

    Example:
        logger = get_logger(__name__)
        logger.info("sent_email", to="alice@example.com", subject="Welcome")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
