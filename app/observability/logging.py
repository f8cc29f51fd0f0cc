"""
Structured logging with structlog.

Every ledger event is a single JSON line on stdout, e.g.

    {"event": "points_consumed", "level": "info", "logger": "app.services.consumption",
     "timestamp": "2026-01-08T12:00:00.123456Z", "service": "points-ledger-api",
     "version": "0.1.0", "request_id": "3f2a...", "tenant_id": "company-123", ...}

request_id comes from the HTTP middleware through log_context; tenant ids and
amounts are passed as keyword arguments by the services.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings


def add_service_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", settings.service_name)
    event_dict.setdefault("version", settings.api_version)
    return event_dict


def _processors(debug: bool, render_json: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_fields,
        structlog.processors.StackInfoRenderer(),
        # Full tracebacks only when debugging; otherwise a flat exception string.
        structlog.processors.ExceptionRenderer() if debug else structlog.processors.format_exc_info,
    ]
    if render_json:
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    return chain


def setup_logging() -> None:
    """Route stdlib logging to stdout and configure structlog on top of it."""
    level_name = settings.log_level.upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name),
    )

    structlog.configure(
        processors=_processors(
            debug=level_name == "DEBUG",
            render_json=settings.log_format == "json",
        ),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind keys into the structlog context for the duration of a block.

        with log_context(request_id="req-123"):
            logger.info("points_granted", tenant_id="company-1", amount=100)

    Only the keys bound here are removed on exit, so nested contexts compose.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields

    def __enter__(self) -> "log_context":
        structlog.contextvars.bind_contextvars(**self.fields)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.fields)
