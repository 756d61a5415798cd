"""
Logging for the authorization engine.

Every record logged by an engine module carries the call it belongs to:
- correlation_id: bound by the embedding service with correlation_scope(),
  or minted by the facade when a call arrives without one
- operation: the facade operation running (login_email, grant_roles, ...)

Records are rendered as JSON lines in production and as one text line per
record in development.

Usage:
    from authkernel.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Granted roles", extra={"principal_id": principal_id})
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
operation_var: ContextVar[Optional[str]] = ContextVar("operation", default=None)

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}
_CALL_ATTRS = ("correlation_id", "operation")


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def get_operation() -> Optional[str]:
    return operation_var.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[None]:
    """Bind a correlation ID to every engine record logged inside the block."""
    token = correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        correlation_id_var.reset(token)


@contextmanager
def operation_scope(operation: str) -> Iterator[str]:
    """
    Bind the running facade operation.

    A caller-bound correlation ID is kept; otherwise one is minted for the
    duration of the operation. Yields the correlation ID in effect.
    """
    correlation_id = get_correlation_id() or uuid.uuid4().hex
    corr_token = correlation_id_var.set(correlation_id)
    op_token = operation_var.set(operation)
    try:
        yield correlation_id
    finally:
        operation_var.reset(op_token)
        correlation_id_var.reset(corr_token)


class CallContextFilter(logging.Filter):
    """Stamp correlation_id and operation on records from context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = get_correlation_id() or "-"  # type: ignore[attr-defined]
        if getattr(record, "operation", None) is None:
            record.operation = get_operation() or "-"  # type: ignore[attr-defined]
        return True


_call_context_filter = CallContextFilter()


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in _CALL_ATTRS:
            value = getattr(record, attr, None)
            if value and value != "-":
                log_obj[attr] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in _CALL_ATTRS or value is None:
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        return json.dumps(log_obj)


def _create_dev_formatter() -> logging.Formatter:
    return logging.Formatter(
        "%(asctime)s %(levelname)-5s [%(name)s] corr=%(correlation_id)s op=%(operation)s %(message)s",
        datefmt="%H:%M:%S",
    )


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install a stderr handler on the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: 'development' or 'production'
        debug: If True, use DEBUG level regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    # Records from non-engine loggers also need the fields the formatter uses
    handler.addFilter(_call_context_filter)

    if environment == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(_create_dev_formatter())

    root.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get an engine logger.

    The call context is stamped when the record is created, so it is visible
    to every handler, including ones installed by the embedding service.
    """
    logger = logging.getLogger(name)
    if _call_context_filter not in logger.filters:
        logger.addFilter(_call_context_filter)
    return logger
