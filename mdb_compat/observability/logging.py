"""
Logging utilities for MDB_COMPAT.

Log records are enriched from three context variables:

- a correlation id, set by the caller around a unit of work;
- the uid of the signed-in user, bound by the auth manager;
- the realtime listener whose callback is running, bound by the channel.

A backend call, the auth exchange that preceded it and the push that
followed can then be tied together in the logs.
"""

import contextvars
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

_session_uid: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_uid", default=None
)

_listener: contextvars.ContextVar[tuple[str, str] | None] = contextvars.ContextVar(
    "listener", default=None
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set a correlation ID in the current context.

    Args:
        correlation_id: Optional correlation ID (generates new one if None)

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def bind_session_user(uid: str | None) -> None:
    """Attach (or with None, detach) the signed-in user's uid to later records."""
    _session_uid.set(uid)


@contextmanager
def listener_scope(listener_id: str, collection: str) -> Iterator[None]:
    """Tag records emitted inside the block with a realtime listener."""
    token = _listener.set((listener_id, collection))
    try:
        yield
    finally:
        _listener.reset(token)


def get_logging_context() -> dict[str, Any]:
    """
    Current logging context.

    Returns:
        Dictionary with a timestamp plus whichever of correlation_id, uid,
        subscription_id and collection are bound
    """
    context: dict[str, Any] = {"timestamp": datetime.now().isoformat()}

    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id

    uid = _session_uid.get()
    if uid:
        context["uid"] = uid

    listener = _listener.get()
    if listener is not None:
        context["subscription_id"], context["collection"] = listener

    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds the bound context to every record.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = get_logging_context()
        extra = kwargs.get("extra")
        if extra:
            context.update(extra)
        kwargs["extra"] = context
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    """
    Get a contextual logger.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    success: bool = True,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Log one backend call with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g. "document.get", "query.get")
        level: Log level
        success: Whether the call succeeded
        duration_ms: Call duration in milliseconds
        **context: Call details (collection, document_id, error, ...)
    """
    record_context = get_logging_context()
    record_context["operation"] = operation
    record_context["success"] = success
    if duration_ms is not None:
        record_context["duration_ms"] = round(duration_ms, 2)
    record_context.update(context)

    message = f"Operation: {operation}" if success else f"Operation failed: {operation}"
    if duration_ms is not None:
        message += f" (duration: {duration_ms:.2f}ms)"

    logger.log(level, message, extra=record_context)
