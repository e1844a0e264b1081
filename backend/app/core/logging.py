# backend/app/core/logging.py

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

import structlog

from app.core.config import settings

_REDACTED_KEYS = {"password", "secret", "token", "authorization", "email"}


def _redact_sensitive(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credentials and emails; keep first/last 2 chars for debugging."""
    for key in list(event_dict.keys()):
        lower_key = key.lower()
        if any(k in lower_key for k in _REDACTED_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 4:
                event_dict[key] = value[:2] + "***" + value[-2:]
            elif isinstance(value, str):
                event_dict[key] = "***"
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=False)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: Optional[str] = None) -> str:
    """Start a fresh logging context for one request."""
    rid = request_id or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=rid)
    return rid


def bind_principal_context(*, tenant_id: Any, user_id: Any, store_id: Any = None) -> None:
    structlog.contextvars.bind_contextvars(
        tenant_id=str(tenant_id),
        user_id=str(user_id),
        store_id=str(store_id) if store_id else None,
    )


configure_logging(log_level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
