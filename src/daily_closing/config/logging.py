"""Structured logging for the closing ledger.

Modules log snake_case event names with keyword context::

    logger.info("closing_created", closing_id=closing.id, variance=str(closing.variance))
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, Literal

import structlog

from daily_closing.config.settings import get_settings

SENSITIVE_KEYS = frozenset({"secret", "edit_secret", "api_key", "apikey", "authorization"})


def redact_sensitive(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credentials that end up in log context."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: ``json`` for log shippers, ``console`` for terminals.
            Defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(log_level)
    # httpx logs every store request at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(format or settings.log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
