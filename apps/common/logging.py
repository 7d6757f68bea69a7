"""
Logging infrastructure for HydroBill Platform.

- RequestIDFilter: stamps every record with the active correlation id
- log_context: binds a correlation id (and extra fields) for a block of work

Usage:
    from apps.common.logging import log_context

    with log_context(meter_id="BM-001"):
        logger.info("Closing cycle")
"""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from collections.abc import Generator
from typing import Any

# Thread-local storage for request/job context
_request_context = threading.local()

CONTEXT_FIELDS = ("request_id", "meter_id", "billing_month", "batch_id")


# =============================================================================
# CONTEXT FUNCTIONS
# =============================================================================


def get_request_id() -> str | None:
    """Get the current request ID from thread-local storage."""
    return getattr(_request_context, "request_id", None)


def set_request_context(**kwargs: Any) -> None:
    """Set request context for the current thread"""
    for key, value in kwargs.items():
        setattr(_request_context, key, value)


def get_request_context() -> dict[str, Any]:
    """Get request context for the current thread"""
    context = {field: getattr(_request_context, field, None) for field in CONTEXT_FIELDS}
    context["request_id"] = context["request_id"] or "-"
    return context


@contextlib.contextmanager
def log_context(**kwargs: Any) -> Generator[str, None, None]:
    """
    Bind correlation fields for the duration of a block.

    A request_id is generated when none is given. Previous values are
    restored on exit so nested blocks (batch -> single closure) compose.
    """
    kwargs.setdefault("request_id", getattr(_request_context, "request_id", None) or uuid.uuid4().hex)
    previous = {key: getattr(_request_context, key, None) for key in kwargs}
    set_request_context(**kwargs)
    try:
        yield kwargs["request_id"]
    finally:
        for key, value in previous.items():
            if value is None:
                if hasattr(_request_context, key):
                    delattr(_request_context, key)
            else:
                setattr(_request_context, key, value)


# =============================================================================
# REQUEST ID FILTER - Structured Logging with Correlation
# =============================================================================


class RequestIDFilter(logging.Filter):
    """
    Add request ID and context to log records.

    This filter injects the correlation fields from thread-local storage
    into every log record, so a single cycle closure can be traced across
    the tariff, metering and billing loggers.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context attributes to log record"""
        for field, value in get_request_context().items():
            if not hasattr(record, field):
                setattr(record, field, value)
        return True

