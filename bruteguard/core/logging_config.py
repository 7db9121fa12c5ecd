"""
structlog setup for bruteguard.

Every module logs through ``get_logger(__name__)``. Events are key/value
pairs naming the counter involved, so a block decision can be traced back to
the failures that caused it:

    logger = get_logger(__name__)
    logger.info("check blocked", type="ip", value="203.0.113.5", fail_count=11)

LOG_JSON=true emits one JSON object per line for log shippers:
    {"type": "ip", "value": "203.0.113.5", "fail_count": 11,
     "event": "check blocked", "level": "info", "timestamp": "2024-06-01T12:00:00Z"}

Otherwise the console renderer is used:
    2024-06-01T12:00:00Z [info     ] check blocked  fail_count=11 type=ip value=203.0.113.5

Output goes to stderr so CLI results on stdout stay scriptable.
"""

import logging
import sys
from typing import Any

import structlog

from bruteguard.core.config import settings

IS_TEST = "pytest" in sys.modules

# Libraries whose INFO chatter drowns out counter events
QUIET_LOGGERS = ("sqlalchemy.engine", "apscheduler")


def _resolve_level(level: str | None) -> int:
    resolved = logging.getLevelName((level or settings.LOG_LEVEL).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _renderer(json_output: bool) -> list[Any]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=not IS_TEST)]


def configure_logging(json_output: bool | None = None, level: str | None = None) -> None:
    """Configure structlog from LOG_JSON / LOG_LEVEL, or the given overrides."""
    if json_output is None:
        json_output = settings.LOG_JSON
    log_level = _resolve_level(level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        *_renderer(json_output),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger bound to ``name``; pass ``__name__``."""
    return structlog.get_logger(name)


configure_logging()
