"""
NGS Vault Logging

structlog configuration shared by the API and command line entry points.
"""

import logging
import sys

import structlog

from ngsvault.config import LogFormat, LogLevel


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    fmt: LogFormat | str = LogFormat.CONSOLE,
) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        level: Minimum level that is emitted
        fmt: ``json`` for machine readable lines, ``console`` for humans
    """
    level_name = LogLevel(str(getattr(level, "value", level)).upper()).value
    numeric_level = getattr(logging, level_name)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
        force=True,
    )

    if LogFormat(fmt) == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
