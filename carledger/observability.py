"""
carledger Observability

Structured logging for the ownership core. Every log line carries the layer
that produced it, the operation, a correlation ID shared by everything logged
within one ledger call, and free-form context fields.

    ┌─────────────────────────────────────────────────────────┐
    │                    Contract / Core                       │
    │  log.info("msg", key="CAR1")   @timed_operation(...)     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     LedgerLogger                         │
    │  layer, correlation IDs, structured context             │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │          StructuredHandler (JSON) │ text formatter       │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

import contextvars
import functools
import json
import logging
import sys
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LedgerLayer(Enum):
    """Components of the ownership core, used to categorise log events."""
    IDENTITY = "identity"
    AUTHORIZATION = "authorization"
    QUOTA = "quota"
    TRANSFER = "transfer"
    PROVENANCE = "provenance"
    CONTRACT = "contract"
    STORE = "store"
    EVENTS = "events"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _event_from_record(record: logging.LogRecord) -> LogEvent:
    event = LogEvent(
        timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        level=record.levelname.lower(),
        logger=record.name,
        message=record.getMessage(),
        correlation_id=getattr(record, "correlation_id", "") or correlation_id_var.get(),
        layer=getattr(record, "layer", ""),
        operation=getattr(record, "operation", ""),
        duration_ms=getattr(record, "duration_ms", None),
        error_code=getattr(record, "error_code", ""),
        context=getattr(record, "context", {}) or {},
    )
    if record.exc_info:
        event.exception = "".join(traceback.format_exception(*record.exc_info))
    return event


class StructuredHandler(logging.Handler):
    """Logging handler that writes one JSON object per line."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(_event_from_record(record).to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Human-readable single-line rendering of structured records."""

    def format(self, record: logging.LogRecord) -> str:
        event = _event_from_record(record)
        parts = [event.timestamp, event.level.upper(), f"[{event.layer or event.logger}]", event.message]
        if event.context:
            parts.append(" ".join(f"{k}={v}" for k, v in sorted(event.context.items())))
        if event.duration_ms is not None:
            parts.append(f"({event.duration_ms:.2f}ms)")
        line = " ".join(parts)
        if event.exception:
            line += "\n" + event.exception
        return line


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> None:
    """Install the carledger handler on the package root logger."""
    root = logging.getLogger("carledger")
    root.setLevel(getattr(logging, level.upper()))
    for h in list(root.handlers):
        if getattr(h, "_carledger", False):
            root.removeHandler(h)

    if fmt == "text":
        handler: logging.Handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(TextFormatter())
    else:
        handler = StructuredHandler(stream)
    handler._carledger = True  # type: ignore[attr-defined]
    root.addHandler(handler)


class LedgerLogger:
    """
    Structured logger for carledger components.

    Thin wrapper over a stdlib logger under the ``carledger.<layer>`` hierarchy
    that attaches layer, operation and context to every record. Handlers are
    installed once on the package root by ``configure_logging``.
    """

    def __init__(self, name: str, layer: LedgerLayer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"carledger.{layer.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "correlation_id": correlation_id_var.get(),
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: LedgerLayer) -> LedgerLogger:
    """Get a logger for a carledger component."""
    return LedgerLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: LedgerLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations.

    Each call runs under a fresh correlation ID unless one is already set.
    Ledger errors are logged with their code before being re-raised.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            token = None
            if not correlation_id_var.get():
                token = set_correlation_id(generate_correlation_id())
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                success = False
                code = getattr(exc, "code", "")
                if code:
                    logger.warning(str(exc), operation=operation_name, error_code=code)
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
                if token is not None:
                    correlation_id_var.reset(token)
        return wrapper
    return decorator
