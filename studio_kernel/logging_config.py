"""
Structured JSON logging for the studio back office.

Every record is written as one JSON line.  On top of ``ts``, ``level``,
``logger`` and ``message`` a line carries:

- the fields bound through ``LogContext`` for the current operator action
  or pay-page request (correlation id, invoice, acting operator and, for
  public payment traffic, ``token_hint``);
- the ``extra={...}`` keys given at the call site;
- for a raised ``StudioError``, its ``code`` and public attributes as
  ``exc_*`` keys, so a failed payment can be traced without a traceback.

A payment token is a bearer secret for the public pay page.  Only its
six-character ``token_hint`` may reach a log line.

Usage:
    logger = get_logger("services.online_payment")
    with LogContext.bind(invoice_id=str(invoice.id)):
        logger.info("payment_captured", extra={"amount": amount})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
    "token_hint",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "studio_kernel"

# Order here is the order fields appear in a JSON line.
_CONTEXT_FIELDS = ("correlation_id", "invoice_id", "actor_id", "token_hint")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"studio_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """
    Fields stamped onto every record logged in the current context.

    Backed by ``contextvars``, so each thread and each asyncio task sees
    its own values.
    """

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        invoice_id: str | None = None,
        actor_id: str | None = None,
        token_hint: str | None = None,
    ) -> None:
        """Overwrite the given fields; a None argument leaves its field alone."""
        values = {
            "correlation_id": correlation_id,
            "invoice_id": invoice_id,
            "actor_id": actor_id,
            "token_hint": token_hint,
        }
        for name, value in values.items():
            if value is not None:
                _context_vars[name].set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        bound: dict[str, str] = {}
        for name in _CONTEXT_FIELDS:
            value = _context_vars[name].get()
            if value is not None:
                bound[name] = value
        return bound

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """
        Bind fields for the duration of a ``with`` block.

        None values and names that are not context fields are skipped.
        Previous values come back on exit, even when the block raises.
        """
        tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = []
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                tokens.append((var, var.set(value)))
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def token_hint(token: str | None) -> str | None:
    """First six characters of a payment token, for correlating pay-page logs."""
    if not token:
        return None
    return f"{token[:6]}..."


# ---------------------------------------------------------------------------
# JSON lines
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else on a record came from extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    """Money, ids and timestamps as strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # StudioError subclasses keep their context as plain attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``studio_kernel.<name>``; every studio package logs here."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Route the studio logger tree to one JSON handler.

    Only the first call has an effect; the engine calls this on start-up
    and an application may call it earlier to pick the level or handler.
    Records do not propagate to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    studio_logger = logging.getLogger(_LOGGER_PREFIX)
    studio_logger.setLevel(level)
    studio_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    studio_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``. Tests only."""
    global _configured
    with _lock:
        _configured = False
    studio_logger = logging.getLogger(_LOGGER_PREFIX)
    studio_logger.handlers.clear()
    studio_logger.setLevel(logging.WARNING)
    studio_logger.propagate = True
