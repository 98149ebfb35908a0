"""Structured logging configuration for the embedding service.

This module standardizes logging using ``structlog``. It produces either JSON
(for machines) or a pretty console format (for humans) and binds the service
name so logs are useful when aggregated. uvicorn's own loggers are routed
through the same root handler and level so server and application lines
share one stream.

Typical usage
- Call ``configure_logging(service_name, log_level, log_format)`` at startup
- Start uvicorn with ``log_config=None`` so it keeps this setup
- Acquire loggers via ``structlog.get_logger(name)``
"""

import logging
import sys

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def resolve_log_level(log_level: str) -> str:
    """Return the canonical level name (``warn`` -> ``WARNING``).

    The lowercase form of the result is also a valid uvicorn ``log_level``.
    Raises ``ValueError`` for unknown names.
    """
    name = log_level.strip().upper()
    name = LOG_LEVEL_ALIASES.get(name, name)
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {log_level!r}; expected one of {', '.join(LOG_LEVELS)}")
    return name


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """Configure structured logging for a service.

    Parameters
    - service_name: Logical service identifier bound to each log line
    - log_level: level name, case-insensitive; ``WARN``/``FATAL`` accepted
    - log_format: ``json`` for production; ``console`` for local dev
    """
    level = getattr(logging, resolve_log_level(log_level))

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)

    for name in UVICORN_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True
        server_logger.setLevel(level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
    ]

    if log_format == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)
