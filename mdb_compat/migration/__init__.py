"""
Migration rollout state for MDB_COMPAT.
"""

from .state import (
    ROLLOUT_ORDER,
    MigrationConfig,
    MigrationManager,
    MigrationPhase,
    SafetyReport,
    ServiceStatus,
    ValidationResult,
    phase,
    progress,
    recommendations,
    safety_check,
    service_status,
    validate,
)

__all__ = [
    "ROLLOUT_ORDER",
    "MigrationConfig",
    "MigrationManager",
    "MigrationPhase",
    "SafetyReport",
    "ServiceStatus",
    "ValidationResult",
    "phase",
    "progress",
    "recommendations",
    "safety_check",
    "service_status",
    "validate",
]
