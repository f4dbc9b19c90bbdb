"""
PR Board — Request-aware logging

Thin layer over the standard ``logging`` module: every record carries the id
of the request that produced it, and store operations are timed.
"""

import contextvars
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import LOG_LEVEL

SERVICE_LOGGER = "pr-board"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [rid=%(request_id)s] %(message)s"


@dataclass
class RequestContext:
    """Context for request tracing"""
    request_id: str
    correlation_id: str
    user_id: Optional[str] = None
    start_time: float = field(default_factory=time.perf_counter)

    @staticmethod
    def create(
        request_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> "RequestContext":
        rid = request_id or str(uuid.uuid4())
        return RequestContext(request_id=rid, correlation_id=correlation_id or rid)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000


# Async-safe context var (works with FastAPI/asyncio)
_context_var: contextvars.ContextVar[Optional[RequestContext]] = contextvars.ContextVar(
    "request_context", default=None
)


def get_current_context() -> Optional[RequestContext]:
    return _context_var.get()


def set_current_context(context: RequestContext) -> contextvars.Token:
    return _context_var.set(context)


def reset_current_context(token: contextvars.Token) -> None:
    _context_var.reset(token)


class ContextFormatter(logging.Formatter):
    """Formatter that stamps the active request id onto every record."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "request_id"):
            context = get_current_context()
            record.request_id = context.request_id[:8] if context else "-"
        return super().format(record)


def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
    )
    for handler in logging.getLogger().handlers:
        handler.setFormatter(ContextFormatter(LOG_FORMAT))
    return logging.getLogger(SERVICE_LOGGER)


def _format_fields(fields: Dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)


class TimedOperation:
    """Context manager for timing store operations"""

    def __init__(self, logger: logging.Logger, operation: str, **fields: Any):
        self.logger = logger
        self.operation = operation
        self.fields = fields
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        if exc_type:
            self.logger.error(
                "%s failed ms=%.1f %s error=%s",
                self.operation, self.duration_ms, _format_fields(self.fields), exc_type.__name__,
            )
        else:
            self.logger.info(
                "%s ok ms=%.1f %s",
                self.operation, self.duration_ms, _format_fields(self.fields),
            )
        return False
