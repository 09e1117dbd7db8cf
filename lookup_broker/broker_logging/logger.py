"""
structlog setup for the broker.

Every record is one JSON object (console output when LOG_FORMAT is not
"json") with event_type, level, timestamp and the logger name, plus whatever
context the call site bound: principal_id, service, attempt, balance.
Looked-up identifiers never reach the log in clear: any "query" field is
masked down to its last four characters before rendering.

No lookup_broker imports here; every other module imports this one.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

QUERY_FIELDS = ("query",)
VISIBLE_QUERY_CHARS = 4


def mask_query(query: str | None, keep: int = VISIBLE_QUERY_CHARS) -> str:
    """Mask all but the last `keep` characters of a looked-up identifier."""
    query = query or ""
    if len(query) <= keep:
        return "*" * len(query)
    return "*" * (len(query) - keep) + query[-keep:]


def _redact_query(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in QUERY_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str):
            # mask_query is idempotent, so pre-masked values pass through unchanged
            event_dict[key] = mask_query(value)
    return event_dict


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type; message mirrors it unless given."""
    event = event_dict.pop("event", None)
    if event is not None:
        event_dict.setdefault("event_type", event)
    if "event_type" in event_dict:
        event_dict.setdefault("message", str(event_dict["event_type"]))
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None) -> None:
    """(Re)configure structlog. Defaults come from LOG_LEVEL and LOG_FORMAT."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    level_value = getattr(logging, level_name, logging.INFO)
    fmt = (fmt or os.getenv("LOG_FORMAT", "json")).strip().lower()

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            _redact_query,
            _event_type,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger with `logger` bound to its name.

        logger = get_logger(__name__)
        logger.info("ledger_debit", principal_id=pid, amount=2, balance=3)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_principal(principal_id: str) -> structlog.BoundLogger:
    """Logger carrying principal_id on every event of one request."""
    return get_logger("lookup_broker").bind(principal_id=principal_id)
