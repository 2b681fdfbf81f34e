"""
JSON log lines for server and disk operations.

Each record carries the provider, the resource acted on and, for tracked
work, the operation kind and provider operation id::

    {"timestamp": "...", "level": "INFO", "logger": "vmjack",
     "message": "Submitted stop (PENDING)", "provider": "gcp",
     "resource": ".../instances/web-1", "operation": "stop",
     "operation_id": "operation-1712", "request_id": "9f2c01ab77de"}

Grepping for one ``operation_id`` yields the submit, any poll retries and
the outcome of that operation.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

_CONTEXT_FIELDS = ("request_id", "provider", "resource", "operation", "operation_id")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; unset context fields are omitted."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in _CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry)


class VmjackLogger:
    """Logger whose methods take operation context as keyword arguments.

    Attributes:
        logger: Underlying :class:`logging.Logger`; a JSON stream handler is
            installed the first time a name is used.
    """

    def __init__(self, name: str = "vmjack") -> None:
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def log_operation(
        self,
        level: int,
        message: str,
        *,
        provider: str | None = None,
        resource: str | None = None,
        operation: str | None = None,
        operation_id: str | None = None,
        request_id: str | None = None,
        exc_info: bool = False,
    ) -> None:
        """Log *message* at *level* with the given context attached.

        ``resource`` is the server or disk name or link, ``operation`` the
        kind (``stop``, ``attachDisk``, ...).  A short random
        ``request_id`` is generated when none is passed.
        """
        context = {
            "provider": provider,
            "resource": resource,
            "operation": operation,
            "operation_id": operation_id,
            "request_id": request_id or uuid.uuid4().hex[:12],
        }
        self.logger.log(level, message, extra=context, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self.log_operation(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.log_operation(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log_operation(logging.WARNING, message, **context)

    def error(self, message: str, **context: Any) -> None:
        self.log_operation(logging.ERROR, message, **context)


def operation_context(provider: str, op: Any) -> dict[str, Any]:
    """Context fields for a tracked operation."""
    return {
        "provider": provider,
        "resource": op.target,
        "operation": op.kind,
        "operation_id": op.id,
    }


vj_logger = VmjackLogger()
