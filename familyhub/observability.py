from __future__ import annotations

import logging
import sys
from typing import List

import structlog
from structlog import dev

from .config import Settings

# Loggers that install their own handlers; they are routed through the root handler.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
ORM_LOGGERS = ("sqlalchemy.engine", "alembic")

_LOGGING_CONFIGURED = False
_SENTRY_CONFIGURED = False


def _renderer(json_logs: bool) -> structlog.types.Processor:
    if json_logs:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return dev.ConsoleRenderer(colors=False)


def _route_library_loggers(level: int) -> None:
    for name in SERVER_LOGGERS + ORM_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True
    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(level)
    # SQL echo stays off unless asked for explicitly.
    logging.getLogger("sqlalchemy.engine").setLevel(max(level, logging.WARNING))


def configure_logging(json_logs: bool, level: str = "INFO") -> None:
    """Send stdlib and structlog records through one structlog formatter on stdout.

    Services log with ``logging.getLogger(__name__)`` and %-style arguments; the
    formatter adds logger name, level and a UTC timestamp, and renders JSON when
    ``json_logs`` is set. Calling this again is a no-op.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(json_logs),
            foreign_pre_chain=[
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                timestamper,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _route_library_loggers(log_level)
    _LOGGING_CONFIGURED = True


def init_sentry(settings: Settings) -> None:
    """Forward ERROR records and request traces to Sentry when a DSN is configured."""
    global _SENTRY_CONFIGURED
    if _SENTRY_CONFIGURED or not settings.sentry_dsn:
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
    )
    _SENTRY_CONFIGURED = True
