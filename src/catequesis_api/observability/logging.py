"""
catequesis_api.observability.logging

Structured logging configuration for the service.

Responsibilities:
- Configure `structlog` for JSON logs (console rendering in dev).
- Scrub credential-bearing fields before they reach any sink.
- Provide a small wrapper for obtaining bound loggers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Keys that must never be emitted, regardless of which layer bound them.
_REDACTED_KEYS = frozenset({"password", "password_hash", "authorization", "token", "jwt_secret"})


def configure_logging(*, service_name: str, level: str, env: str = "prod") -> None:
    """
    JSON logs everywhere except `dev`, where a console renderer is easier to read.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer: Any
    if env == "dev":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_name(service_name),
            _redact_secrets,
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _add_service_name(service_name: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def _redact_secrets(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# Request-scoped metadata is bound via contextvars in `observability.middleware`;
# activity records go through `observability.activity` and land on the same pipeline.
