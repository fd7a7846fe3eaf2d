"""Structured logging helpers: correlation ids, timings and PII-safe fields."""

import hashlib
import inspect
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional

from ownitright.utils.logging_config import LoggingConfig, get_logger


_correlation_id: ContextVar[Optional[str]] = ContextVar("ownitright_correlation_id", default=None)

_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
# +91 98450 12345, 080-2345-6789, (080) 23456789
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")
_SECRET_RE = re.compile(r"(?i)\b(api[_-]?key|token|secret|password|authorization)\b[\s:=]+\S{8,}")


def generate_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Scope a correlation id to a block; RestClient sends it as a header."""
    token = _correlation_id.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Redact emails, phone numbers and credentials."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    text = _EMAIL_RE.sub("[REDACTED_EMAIL]", text)
    text = _PHONE_RE.sub("[REDACTED_PHONE]", text)
    return _SECRET_RE.sub(lambda m: f"{m.group(1)}=[REDACTED]", text)


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Shorten long (uuid-like) user ids to a prefix plus hash."""
    if not user_id or not LoggingConfig.LOG_MASK_SENSITIVE or len(user_id) <= 12:
        return user_id
    digest = hashlib.sha256(user_id.encode()).hexdigest()[:8]
    return f"{user_id[:4]}...{digest}"


def sanitize_search_text(text: Optional[str], max_length: int = 100) -> Optional[str]:
    """
    Prepare a free-text filter query for a log field.

    Returns None when search logging is disabled or the query is empty.
    Queries longer than max_length are cut and marked with "...".
    """
    if not text or not LoggingConfig.LOG_SEARCH_TEXT:
        return None
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return mask_sensitive_data(text)


def format_cache_key(key: tuple) -> str:
    """Render a cache key as "a|b|c"; path segments are kept, other strings masked."""
    rendered = []
    for part in key:
        if isinstance(part, str) and not part.startswith("/"):
            rendered.append(mask_user_id(part))
        else:
            rendered.append(str(part))
    return "|".join(rendered)


class StructuredLogger:
    """Wraps a stdlib logger so call sites pass fields as keyword arguments."""

    def __init__(self, logger: logging.Logger, **bound: Any):
        self.logger = logger
        self._bound = bound

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Return a logger that adds fields to every record."""
        return StructuredLogger(self.logger, **{**self._bound, **fields})

    def _fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        extra = dict(self._bound)
        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id
        extra.update(fields)
        return extra

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._fields(fields), exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **fields)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(
    operation_name: str,
    logger: Optional[StructuredLogger] = None,
    **context: Any,
) -> Iterator[Dict[str, Any]]:
    """
    Time a block and log its duration at debug level.

    Yields a dict; fields the block adds to it (status codes, item counts)
    are included in the completion record. A warning is logged when the
    block runs longer than LOG_SLOW_OPERATION_THRESHOLD_MS.
    """
    log = logger or get_structured_logger(__name__)
    outcome: Dict[str, Any] = {}
    started = time.perf_counter()
    log.debug(f"Starting {operation_name}", operation=operation_name, **context)
    try:
        yield outcome
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        fields = {**context, **outcome}
        log.debug(
            f"Completed {operation_name}",
            operation=operation_name,
            processing_time_ms=elapsed_ms,
            **fields
        )
        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if elapsed_ms > threshold:
            log.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold,
                **fields
            )


def timed(operation_name: Optional[str] = None, logger: Optional[StructuredLogger] = None):
    """Decorator form of log_timing for plain and async functions."""
    def decorator(func: Callable) -> Callable:
        name = operation_name or func.__qualname__
        log = logger or get_structured_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_timing(name, logger=log):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            with log_timing(name, logger=log):
                return func(*args, **kwargs)
        return wrapper

    return decorator
