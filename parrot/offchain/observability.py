"""
Off-chain Observability

Structured logging for the authorization pipeline. Every record carries the
protocol layer that emitted it, a correlation id shared by all steps of one
authorization lifecycle, and key/value context.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │   builder │ signer │ envelope │ submitter │ workflow    │
    │   logger.info("msg", signer=addr, nonce=n)              │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                    OffchainLogger                        │
    │  layer tag, correlation id, structured context          │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │  StructuredHandler (json lines) │ StreamHandler (text)   │
    └─────────────────────────────────────────────────────────┘

Never pass private keys or raw signatures as context; addresses, nonces,
amounts and transaction hashes are fine.

Copyright (c) 2026 Parrot Network. All rights reserved.
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import json
import logging
import sys
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

ROOT_LOGGER = "parrot"

# Attributes OffchainLogger attaches to every LogRecord via `extra`.
_RECORD_FIELDS = ("layer", "operation", "error_code", "duration_ms", "context", "correlation_id")


class OffchainLayer(Enum):
    """Pipeline stages for categorization."""
    BUILDER = "builder"
    SIGNER = "signer"
    ENVELOPE = "envelope"
    SUBMITTER = "submitter"
    NONCE = "nonce"
    LEDGER = "ledger"
    CONFIRMATION = "confirmation"
    WORKFLOW = "workflow"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """One structured log line."""
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

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "LogEvent":
        return cls(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname.lower(),
            logger=record.name,
            message=record.getMessage(),
            correlation_id=getattr(record, "correlation_id", ""),
            layer=getattr(record, "layer", ""),
            operation=getattr(record, "operation", ""),
            duration_ms=getattr(record, "duration_ms", None),
            error_code=getattr(record, "error_code", ""),
            context=getattr(record, "context", None) or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Only the populated fields; empty strings, None and {} are left out."""
        out: Dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if value is None or value == "" or value == {}:
                continue
            out[name] = value
        return out


class JsonLineFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        event = LogEvent.from_record(record)
        if record.exc_info:
            event.exception = self.formatException(record.exc_info)
        return json.dumps(event.to_dict(), default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the layer tag and sorted ``key=value`` context."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s [%(layer)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "layer"):
            record.layer = "-"
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return line


class StructuredHandler(logging.StreamHandler):
    """Stream handler that writes one JSON object per line (stderr by default)."""

    def __init__(self, stream: Any = None):
        super().__init__(stream or sys.stderr)
        self.setFormatter(JsonLineFormatter())


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> logging.Logger:
    """Install a single handler on the ``parrot`` logger hierarchy."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if fmt == "json":
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(TextFormatter())
    root.addHandler(handler)
    root.propagate = False
    return root


class OffchainLogger:
    """
    Structured logger for one pipeline component.

    Records go to ``parrot.<layer>.<name>`` so handlers configured on the
    ``parrot`` logger see everything. The correlation id is read when the
    record is created, so it reflects the task that logged it.
    """

    def __init__(self, name: str, layer: OffchainLayer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{layer.value}.{name}")

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
        if not self._logger.isEnabledFor(level):
            return
        values = (self.layer.value, operation, error_code, duration_ms, context, correlation_id_var.get())
        self._logger.log(level, message, extra=dict(zip(_RECORD_FIELDS, values)), exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, error_code: str = "", **context: Any) -> None:
        self._log(logging.WARNING, message, error_code=error_code, **context)

    def error(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(self, name: str, duration_ms: float, success: bool = True, **context: Any) -> None:
        """Record how long a named step took and whether it raised."""
        self._log(
            logging.INFO if success else logging.WARNING,
            f"{name} {'ok' if success else 'failed'}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: OffchainLayer) -> OffchainLogger:
    return OffchainLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: OffchainLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Log the duration and outcome of each call; coroutine functions are awaited."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        def report(started: float, failed: bool) -> None:
            logger.operation(operation_name, (time.monotonic() - started) * 1000, not failed)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                started, failed = time.monotonic(), True
                try:
                    result = await func(*args, **kwargs)
                    failed = False
                    return result
                finally:
                    report(started, failed)
            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            started, failed = time.monotonic(), True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                report(started, failed)
        return wrapper
    return decorator
