"""
Migration State Machine

Derives the rollout phase, progress, configuration problems and next steps
from four independent cut-over flags (auth, database, storage, realtime).
Everything here is a pure function of a MigrationConfig and a settings
mapping; nothing touches the network.

The intended rollout order is auth -> database -> storage -> realtime.
Configurations that are not a prefix of that order are reported as
``mixed``.

Usage:
    manager = MigrationManager.from_env()
    manager.phase()            # MigrationPhase.DATABASE
    manager.progress()         # 50
    manager.recommendations()  # ["Enable the new storage backend: ..."]
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..constants import (
    KNOWN_DEVELOPMENT_SECRETS,
    LEGACY_REQUIRED_SETTINGS,
    MIN_JWT_SECRET_LENGTH,
)

logger = logging.getLogger(__name__)

ROLLOUT_ORDER = ("auth", "database", "storage", "realtime")

_FLAG_ENV = {
    "auth": "USE_NEW_AUTH",
    "database": "USE_NEW_DATABASE",
    "storage": "USE_NEW_STORAGE",
    "realtime": "USE_NEW_REALTIME",
}

_NEXT_STEPS = {
    "auth": "Enable the new auth service: set USE_NEW_AUTH=true, then test sign-in and sign-up",
    "database": (
        "Enable the new document store: start MongoDB, run the data migration, "
        "then set USE_NEW_DATABASE=true"
    ),
    "storage": (
        "Enable the new object storage: configure the bucket, copy existing files, "
        "then set USE_NEW_STORAGE=true"
    ),
    "realtime": (
        "Enable the realtime channel: start the push server, then set USE_NEW_REALTIME=true"
    ),
}


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


class MigrationPhase(str, Enum):
    PREPARATION = "preparation"
    AUTH = "auth"
    DATABASE = "database"
    STORAGE = "storage"
    COMPLETE = "complete"
    MIXED = "mixed"


_PHASE_BY_FLAGS = {
    (False, False, False, False): MigrationPhase.PREPARATION,
    (True, False, False, False): MigrationPhase.AUTH,
    (True, True, False, False): MigrationPhase.DATABASE,
    (True, True, True, False): MigrationPhase.STORAGE,
    (True, True, True, True): MigrationPhase.COMPLETE,
}


@dataclass(frozen=True)
class MigrationConfig:
    """Which subsystems have been cut over to the new backends."""

    auth: bool = False
    database: bool = False
    storage: bool = False
    realtime: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MigrationConfig":
        environ = os.environ if environ is None else environ
        return cls(**{name: _truthy(environ.get(key)) for name, key in _FLAG_ENV.items()})

    def flags(self) -> tuple[bool, bool, bool, bool]:
        return (self.auth, self.database, self.storage, self.realtime)

    def enabled(self) -> list[str]:
        return [name for name in ROLLOUT_ORDER if getattr(self, name)]


@dataclass(frozen=True)
class ServiceStatus:
    legacy: dict[str, bool]
    new_services: dict[str, bool]
    hybrid: bool

    @property
    def uses_legacy(self) -> bool:
        return any(self.legacy.values())


@dataclass(frozen=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class SafetyReport:
    warnings: list[str] = field(default_factory=list)

    @property
    def safe(self) -> bool:
        return not self.warnings


# ============================================================================
# Pure derivations
# ============================================================================


def progress(config: MigrationConfig) -> int:
    """Percentage of subsystems cut over, rounded half up."""
    migrated = sum(config.flags())
    return int(migrated * 100 / len(ROLLOUT_ORDER) + 0.5)


def phase(config: MigrationConfig) -> MigrationPhase:
    return _PHASE_BY_FLAGS.get(config.flags(), MigrationPhase.MIXED)


def service_status(config: MigrationConfig) -> ServiceStatus:
    flags = config.flags()
    return ServiceStatus(
        legacy={
            "auth": not config.auth,
            "database": not config.database,
            "storage": not config.storage,
        },
        new_services={name: getattr(config, name) for name in ROLLOUT_ORDER},
        hybrid=any(flags) and not all(flags),
    )


def validate(config: MigrationConfig, settings: Mapping[str, str]) -> ValidationResult:
    """
    Check the settings each enabled subsystem needs.

    Every missing item is reported, not only the first.
    """
    errors: list[str] = []

    if config.database:
        for key in ("MONGODB_URI", "MONGODB_DATABASE"):
            if not settings.get(key):
                errors.append(f"Document store setting missing: {key}")

    if config.auth:
        secret = settings.get("JWT_SECRET")
        if not secret:
            errors.append("Auth signing secret missing: JWT_SECRET")
        elif len(secret) < MIN_JWT_SECRET_LENGTH:
            errors.append(
                f"Auth signing secret too short: JWT_SECRET needs at least "
                f"{MIN_JWT_SECRET_LENGTH} characters"
            )

    if config.storage:
        for key in ("STORAGE_ACCESS_KEY_ID", "STORAGE_ACCESS_KEY_SECRET", "STORAGE_BUCKET"):
            if not settings.get(key):
                errors.append(f"Object storage setting missing: {key}")

    if config.realtime and not settings.get("WS_URL"):
        errors.append("Realtime channel setting missing: WS_URL")

    if service_status(config).uses_legacy:
        for key in LEGACY_REQUIRED_SETTINGS:
            if not settings.get(key):
                errors.append(f"Legacy client setting missing: {key}")

    return ValidationResult(errors=errors)


def _is_production(settings: Mapping[str, str]) -> bool:
    environment = settings.get("APP_ENV") or settings.get("ENVIRONMENT") or ""
    return environment.strip().lower() == "production"


def safety_check(config: MigrationConfig, settings: Mapping[str, str]) -> SafetyReport:
    """Flag configurations that are risky to run."""
    warnings: list[str] = []

    if _is_production(settings):
        if service_status(config).hybrid:
            warnings.append("Production is running a hybrid legacy/new backend configuration")
        if settings.get("JWT_SECRET") in KNOWN_DEVELOPMENT_SECRETS:
            warnings.append("Production is using a development signing secret")
        if _truthy(settings.get("DEBUG_MODE")):
            warnings.append("Debug mode is enabled in production")

    if config.database and not settings.get("MONGODB_URI"):
        warnings.append("New document store is enabled but MONGODB_URI is not configured")

    return SafetyReport(warnings=warnings)


def recommendations(config: MigrationConfig, settings: Mapping[str, str]) -> list[str]:
    """
    Next steps for the rollout.

    Configuration problems come first and are the only output when present.
    Otherwise the next flag to flip, in rollout order.
    """
    validation = validate(config, settings)
    if not validation.valid:
        return ["Fix configuration problems first:"] + [f"  - {e}" for e in validation.errors]

    current = phase(config)
    if current == MigrationPhase.COMPLETE:
        return ["Migration complete: run a full regression pass and retire the legacy client"]

    steps: list[str] = []
    if current == MigrationPhase.MIXED:
        steps.append(
            "Mixed configuration detected: complete the rollout in order "
            "auth -> database -> storage -> realtime"
        )
    next_flag = next(name for name in ROLLOUT_ORDER if not getattr(config, name))
    steps.append(_NEXT_STEPS[next_flag])
    return steps


# ============================================================================
# Manager
# ============================================================================


class MigrationManager:
    """
    Bundles a MigrationConfig with the settings it is judged against.

    Args:
        config: Cut-over flags
        settings: Settings mapping (defaults to ``os.environ``)
    """

    def __init__(
        self,
        config: MigrationConfig | None = None,
        settings: Mapping[str, str] | None = None,
    ):
        self._settings = dict(os.environ if settings is None else settings)
        self._config = config or MigrationConfig.from_env(self._settings)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MigrationManager":
        settings = dict(os.environ if environ is None else environ)
        return cls(MigrationConfig.from_env(settings), settings)

    @property
    def config(self) -> MigrationConfig:
        return self._config

    def progress(self) -> int:
        return progress(self._config)

    def phase(self) -> MigrationPhase:
        return phase(self._config)

    def status(self) -> ServiceStatus:
        return service_status(self._config)

    def validate(self) -> ValidationResult:
        return validate(self._config, self._settings)

    def safety_check(self) -> SafetyReport:
        report = safety_check(self._config, self._settings)
        for warning in report.warnings:
            logger.warning(f"Migration safety: {warning}")
        return report

    def recommendations(self) -> list[str]:
        return recommendations(self._config, self._settings)

    def summary(self) -> dict[str, Any]:
        """Everything a status dashboard needs, as plain data."""
        status = self.status()
        validation = self.validate()
        safety = safety_check(self._config, self._settings)
        return {
            "phase": self.phase().value,
            "progress": self.progress(),
            "flags": {name: getattr(self._config, name) for name in ROLLOUT_ORDER},
            "legacy": status.legacy,
            "hybrid": status.hybrid,
            "valid": validation.valid,
            "errors": validation.errors,
            "safe": safety.safe,
            "warnings": safety.warnings,
            "recommendations": self.recommendations(),
        }
