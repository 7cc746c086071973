"""Structured logging configuration using structlog.

Console rendering in development, JSON lines in production. Ledger
operations bind the acting tenant and the staged transaction being worked
on, so every event emitted while posting or reversing carries them.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from small_business_ledger.config import Settings, get_settings


def _add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp JSON events with the application name and environment."""
    settings = get_settings()
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("environment", settings.environment.value)
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def build_processors(log_format: str) -> list[Processor]:
    """Processor chain for ``console`` or ``json`` output."""
    processors = _shared_processors()
    if log_format == "json":
        processors += [
            _add_app_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def resolve_log_level(settings: Settings) -> int:
    """``debug`` forces DEBUG; otherwise the configured ``log_level``."""
    if settings.debug:
        return logging.DEBUG
    return getattr(logging, settings.log_level.value)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger from settings.

    Logs go to stderr so that CLI report output on stdout stays parseable.
    """
    settings = settings or get_settings()
    level = resolve_log_level(settings)

    structlog.configure(
        processors=build_processors(settings.resolved_log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    if settings.log_file:
        _add_file_handler(settings.log_file, level)


def _add_file_handler(log_file: Path, level: int) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.getLogger().addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, e.g. ``get_logger(__name__)``."""
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields (such as ``user_id``) to every later event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


class LogContext:
    """Bind fields for the duration of a ``with`` block.

    Example:
        with LogContext(transaction_id=txn.id):
            workflow.edit_posted_transaction(txn.id, reason)
    """

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.kwargs)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.kwargs)
