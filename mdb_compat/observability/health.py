"""
Health check utilities for MDB_COMPAT.

Provides health check functions for the document store, the realtime
channel and the auth session.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exceptions import CompatError

if TYPE_CHECKING:
    from ..auth.manager import AuthTokenManager
    from ..database.store import Database
    from ..realtime.channel import RealtimeChannel

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    name: str
    status: HealthStatus
    message: str
    details: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class HealthChecker:
    """
    Runs registered health checks and folds them into one status.
    """

    def __init__(self):
        self._checks: list[Callable[[], Awaitable[HealthCheckResult]]] = []

    def register_check(self, check_func: Callable[[], Awaitable[HealthCheckResult]]) -> None:
        """
        Register a health check function.

        Args:
            check_func: Async function that returns HealthCheckResult
        """
        self._checks.append(check_func)

    async def check_all(self) -> dict[str, Any]:
        """
        Run all registered health checks.

        Returns:
            Dictionary with overall status and individual check results
        """
        results: list[HealthCheckResult] = []

        for check_func in self._checks:
            name = getattr(check_func, "__name__", "check")
            try:
                results.append(await check_func())
            except (CompatError, RuntimeError, ValueError, TypeError, OSError) as e:
                logger.error(f"Health check {name} failed: {e}", exc_info=True)
                results.append(
                    HealthCheckResult(
                        name=name,
                        status=HealthStatus.UNKNOWN,
                        message=f"Check failed: {e}",
                    )
                )

        statuses = [r.status for r in results]
        if HealthStatus.UNHEALTHY in statuses:
            overall_status = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall_status = HealthStatus.DEGRADED
        elif all(s == HealthStatus.HEALTHY for s in statuses):
            overall_status = HealthStatus.HEALTHY
        else:
            overall_status = HealthStatus.UNKNOWN

        return {
            "status": overall_status.value,
            "timestamp": datetime.now().isoformat(),
            "checks": [r.to_dict() for r in results],
        }


async def check_database_health(
    database: "Database | None", timeout_seconds: float = 5.0
) -> HealthCheckResult:
    """
    Ping the document store.

    Args:
        database: Database facade
        timeout_seconds: Timeout for the ping
    """
    if database is None:
        return HealthCheckResult(
            name="database",
            status=HealthStatus.UNHEALTHY,
            message="Database not initialized",
        )

    try:
        await asyncio.wait_for(database.ping(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return HealthCheckResult(
            name="database",
            status=HealthStatus.UNHEALTHY,
            message=f"Database ping timed out after {timeout_seconds}s",
        )
    except CompatError as e:
        return HealthCheckResult(
            name="database",
            status=HealthStatus.UNHEALTHY,
            message=f"Database health check failed: {e}",
        )

    return HealthCheckResult(
        name="database",
        status=HealthStatus.HEALTHY,
        message="Database connection is healthy",
        details={"permissive_reads": database.permissive_reads},
    )


async def check_realtime_health(channel: "RealtimeChannel | None") -> HealthCheckResult:
    """Report the realtime channel's connection state."""
    if channel is None:
        return HealthCheckResult(
            name="realtime",
            status=HealthStatus.UNKNOWN,
            message="Realtime channel not configured",
        )

    details = {"state": channel.state.value, "listeners": channel.listener_count}
    if channel.is_open:
        return HealthCheckResult(
            name="realtime",
            status=HealthStatus.HEALTHY,
            message="Realtime channel is open",
            details=details,
        )
    if channel.reconnect_exhausted:
        return HealthCheckResult(
            name="realtime",
            status=HealthStatus.UNHEALTHY,
            message="Realtime channel gave up reconnecting",
            details=details,
        )
    return HealthCheckResult(
        name="realtime",
        status=HealthStatus.DEGRADED,
        message=f"Realtime channel is {channel.state.value}",
        details=details,
    )


async def check_auth_health(auth: "AuthTokenManager | None") -> HealthCheckResult:
    """Report whether a session is held. Being signed out is not a failure."""
    if auth is None:
        return HealthCheckResult(
            name="auth",
            status=HealthStatus.UNKNOWN,
            message="Auth manager not configured",
        )

    user = auth.current_user
    return HealthCheckResult(
        name="auth",
        status=HealthStatus.HEALTHY,
        message="Signed in" if user is not None else "No active session",
        details={
            "state": auth.state.value,
            "uid": user.uid if user is not None else None,
            "next_refresh_in": auth.last_refresh_delay,
        },
    )
