"""Structured logging setup with per-update correlation fields.

Every record emitted while an inbound update is being handled carries the
transport update id, the chat id and (once resolved) the account id, so a
single conversation turn can be followed across directory, classifier and
dispatch logs.
"""

from __future__ import annotations

import contextvars
import json
import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from opentelemetry import trace


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    update_id: int | None = None
    chat_id: int | None = None
    account_id: str | None = None


_EMPTY_CONTEXT = CorrelationContext()
_CORRELATION_CONTEXT: contextvars.ContextVar[CorrelationContext | None] = contextvars.ContextVar(
    "clixen_correlation_context",
    default=None,
)


def get_correlation_context() -> CorrelationContext:
    context = _CORRELATION_CONTEXT.get()
    if context is None:
        return _EMPTY_CONTEXT
    return context


def _current_trace_id() -> str:
    ctx = trace.get_current_span().get_span_context()
    if ctx and ctx.trace_id:
        return format(ctx.trace_id, "032x")
    return ""


class CorrelationFilter(logging.Filter):
    """Inject correlation fields into every ``LogRecord`` before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_correlation_context()
        record.update_id = context.update_id
        record.chat_id = context.chat_id
        record.account_id = context.account_id
        record.otel_trace_id = _current_trace_id()
        return True


_BOT_TOKEN_PATTERN = re.compile(r"/bot\d+:[A-Za-z0-9_-]+")
_BEARER_PATTERN = re.compile(r"Bearer [A-Za-z0-9._-]+")


def redact_secrets(text: str) -> str:
    """Mask Telegram bot tokens and bearer tokens in a rendered message."""
    text = _BOT_TOKEN_PATTERN.sub("/bot[REDACTED]", text)
    return _BEARER_PATTERN.sub("Bearer [REDACTED]", text)


class SecretRedactionFilter(logging.Filter):
    """Rewrite the record message so credentials never reach a handler.

    httpx logs full request URLs at INFO, and Bot API URLs embed the token.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object | None] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "update_id": getattr(record, "update_id", None),
            "chat_id": getattr(record, "chat_id", None),
            "account_id": getattr(record, "account_id", None),
            "trace_id": getattr(record, "otel_trace_id", None),
        }
        if record.exc_info is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Configure root logging once with correlation-aware handlers."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    if json_output:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s "
            "update_id=%(update_id)s chat_id=%(chat_id)s account_id=%(account_id)s "
            "trace_id=%(otel_trace_id)s "
            "%(message)s",
        )
    handler.setFormatter(formatter)

    correlation_filter = CorrelationFilter()
    handler.addFilter(correlation_filter)
    handler.addFilter(SecretRedactionFilter())
    root_logger.addFilter(correlation_filter)
    root_logger.addHandler(handler)


@contextmanager
def correlation_scope(
    *,
    update_id: int | None = None,
    chat_id: int | None = None,
    account_id: str | None = None,
) -> Iterator[None]:
    """Apply correlation ids to the current async context.

    Nested scopes inherit outer values unless explicitly overridden.
    """

    current = get_correlation_context()
    updated = CorrelationContext(
        update_id=current.update_id if update_id is None else update_id,
        chat_id=current.chat_id if chat_id is None else chat_id,
        account_id=current.account_id if account_id is None else account_id,
    )
    token = _CORRELATION_CONTEXT.set(updated)
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


__all__ = [
    "CorrelationContext",
    "CorrelationFilter",
    "SecretRedactionFilter",
    "correlation_scope",
    "get_correlation_context",
    "redact_secrets",
    "setup_logging",
]
