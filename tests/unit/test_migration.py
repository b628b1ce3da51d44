"""
Unit tests for the migration state machine.

Every flag combination is exercised; the module is pure so no fixtures
beyond plain settings dicts are needed.
"""

import itertools
import logging

import pytest

from mdb_compat.constants import LEGACY_REQUIRED_SETTINGS
from mdb_compat.migration import (MigrationConfig, MigrationManager, MigrationPhase, phase,
                                  progress, recommendations, safety_check, service_status,
                                  validate)

STRONG_SECRET = "s" * 40

LEGACY_SETTINGS = {key: "legacy-value" for key in LEGACY_REQUIRED_SETTINGS}

FULL_SETTINGS = {
    **LEGACY_SETTINGS,
    "MONGODB_URI": "mongodb://localhost:27017",
    "MONGODB_DATABASE": "orders",
    "JWT_SECRET": STRONG_SECRET,
    "STORAGE_ACCESS_KEY_ID": "key",
    "STORAGE_ACCESS_KEY_SECRET": "secret",
    "STORAGE_BUCKET": "bucket",
    "WS_URL": "ws://localhost:8081",
}

ALL_COMBINATIONS = list(itertools.product([False, True], repeat=4))

EXPECTED_PHASES = {
    (False, False, False, False): MigrationPhase.PREPARATION,
    (True, False, False, False): MigrationPhase.AUTH,
    (True, True, False, False): MigrationPhase.DATABASE,
    (True, True, True, False): MigrationPhase.STORAGE,
    (True, True, True, True): MigrationPhase.COMPLETE,
}


def config_for(flags):
    return MigrationConfig(*flags)


class TestProgressAndPhase:
    @pytest.mark.parametrize("flags", ALL_COMBINATIONS)
    def test_progress(self, flags):
        assert progress(config_for(flags)) == sum(flags) * 25

    @pytest.mark.parametrize("flags", ALL_COMBINATIONS)
    def test_phase(self, flags):
        assert phase(config_for(flags)) == EXPECTED_PHASES.get(flags, MigrationPhase.MIXED)

    def test_realtime_without_predecessors_is_mixed(self):
        assert phase(MigrationConfig(realtime=True)) == MigrationPhase.MIXED
        assert progress(MigrationConfig(realtime=True)) == 25


class TestFromEnv:
    def test_only_literal_true_enables(self):
        config = MigrationConfig.from_env(
            {"USE_NEW_AUTH": "true", "USE_NEW_DATABASE": "TRUE", "USE_NEW_STORAGE": "1"}
        )

        assert config == MigrationConfig(auth=True, database=True)
        assert config.enabled() == ["auth", "database"]

    def test_empty_environment(self):
        assert MigrationConfig.from_env({}) == MigrationConfig()


class TestServiceStatus:
    def test_hybrid(self):
        status = service_status(MigrationConfig(auth=True))

        assert status.hybrid is True
        assert status.legacy == {"auth": False, "database": True, "storage": True}
        assert status.uses_legacy

    @pytest.mark.parametrize("flags", [(False,) * 4, (True,) * 4])
    def test_not_hybrid_at_the_ends(self, flags):
        assert service_status(config_for(flags)).hybrid is False

    def test_realtime_has_no_legacy_counterpart(self):
        status = service_status(MigrationConfig(True, True, True, False))
        assert not status.uses_legacy


class TestValidate:
    def test_fully_configured(self):
        assert validate(MigrationConfig(True, True, True, True), FULL_SETTINGS).valid

    def test_reports_every_missing_item(self):
        result = validate(MigrationConfig(True, True, True, True), {})

        assert not result.valid
        joined = "\n".join(result.errors)
        for key in ("MONGODB_URI", "MONGODB_DATABASE", "JWT_SECRET", "STORAGE_BUCKET", "WS_URL"):
            assert key in joined
        assert "FIREBASE_API_KEY" not in joined

    def test_short_secret(self):
        settings = {**FULL_SETTINGS, "JWT_SECRET": "short"}
        [error] = validate(MigrationConfig(auth=True), settings).errors
        assert "too short" in error

    def test_legacy_settings_required_while_legacy_in_use(self):
        result = validate(MigrationConfig(auth=True), {"JWT_SECRET": STRONG_SECRET})
        assert len(result.errors) == len(LEGACY_REQUIRED_SETTINGS)


class TestSafetyCheck:
    def test_development_is_safe(self):
        assert safety_check(MigrationConfig(auth=True), FULL_SETTINGS).safe

    def test_production_warnings(self):
        settings = {
            **FULL_SETTINGS,
            "APP_ENV": "production",
            "JWT_SECRET": "dev-secret-change-me",
            "DEBUG_MODE": "true",
        }

        report = safety_check(MigrationConfig(auth=True), settings)

        assert len(report.warnings) == 3
        assert not report.safe

    def test_database_without_uri(self):
        report = safety_check(MigrationConfig(auth=True, database=True), {})
        assert any("MONGODB_URI" in w for w in report.warnings)


class TestRecommendations:
    @pytest.mark.parametrize(
        "flags,expected",
        [
            ((False, False, False, False), "USE_NEW_AUTH"),
            ((True, False, False, False), "USE_NEW_DATABASE"),
            ((True, True, False, False), "USE_NEW_STORAGE"),
            ((True, True, True, False), "USE_NEW_REALTIME"),
        ],
    )
    def test_next_step_follows_rollout_order(self, flags, expected):
        steps = recommendations(config_for(flags), FULL_SETTINGS)
        assert expected in steps[-1]

    def test_complete(self):
        [step] = recommendations(MigrationConfig(True, True, True, True), FULL_SETTINGS)
        assert "complete" in step.lower()

    def test_mixed_points_at_first_missing_flag(self):
        steps = recommendations(MigrationConfig(database=True), FULL_SETTINGS)

        assert steps[0].startswith("Mixed configuration")
        assert "USE_NEW_AUTH" in steps[1]

    def test_configuration_problems_take_priority(self):
        steps = recommendations(MigrationConfig(auth=True), {})

        assert steps[0] == "Fix configuration problems first:"
        assert all("USE_NEW" not in s for s in steps)


class TestMigrationManager:
    def test_from_env_summary(self):
        manager = MigrationManager.from_env(
            {**FULL_SETTINGS, "USE_NEW_AUTH": "true", "USE_NEW_DATABASE": "true"}
        )

        summary = manager.summary()

        assert summary["phase"] == "database"
        assert summary["progress"] == 50
        assert summary["hybrid"] is True
        assert summary["valid"] is True
        assert summary["flags"] == {
            "auth": True,
            "database": True,
            "storage": False,
            "realtime": False,
        }
        assert "USE_NEW_STORAGE" in summary["recommendations"][-1]

    def test_safety_check_logs_warnings(self, caplog):
        manager = MigrationManager(
            MigrationConfig(auth=True), {**FULL_SETTINGS, "APP_ENV": "production"}
        )

        with caplog.at_level(logging.WARNING, logger="mdb_compat.migration.state"):
            report = manager.safety_check()

        assert not report.safe
        assert "hybrid" in caplog.text
