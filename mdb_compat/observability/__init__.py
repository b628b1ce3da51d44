"""
Observability components.

Provides structured logging with correlation IDs and health check
capabilities.
"""

from .health import (
    HealthChecker,
    HealthCheckResult,
    HealthStatus,
    check_auth_health,
    check_database_health,
    check_realtime_health,
)
from .logging import (
    ContextualLoggerAdapter,
    bind_session_user,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    get_logging_context,
    listener_scope,
    log_operation,
    set_correlation_id,
)

__all__ = [
    # Logging
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "bind_session_user",
    "listener_scope",
    "get_logging_context",
    "ContextualLoggerAdapter",
    "get_logger",
    "log_operation",
    # Health
    "HealthStatus",
    "HealthCheckResult",
    "HealthChecker",
    "check_database_health",
    "check_realtime_health",
    "check_auth_health",
]
