"""
Unit tests for contextual logging helpers.
"""

import logging

import pytest

from mdb_compat.observability import (bind_session_user, clear_correlation_id,
                                      get_correlation_id, get_logger, get_logging_context,
                                      listener_scope, log_operation, set_correlation_id)
from mdb_compat.realtime import RealtimeChannel


@pytest.fixture(autouse=True)
def clean_context():
    yield
    clear_correlation_id()
    bind_session_user(None)


class TestContext:
    def test_generated_correlation_id(self):
        correlation_id = set_correlation_id()
        assert get_correlation_id() == correlation_id
        assert get_logging_context()["correlation_id"] == correlation_id

    def test_cleared(self):
        set_correlation_id("abc")
        clear_correlation_id()
        assert "correlation_id" not in get_logging_context()

    def test_session_user(self):
        bind_session_user("u1")
        assert get_logging_context()["uid"] == "u1"
        bind_session_user(None)
        assert "uid" not in get_logging_context()

    def test_listener_scope_is_restored(self):
        with listener_scope("orders#1", "orders"):
            context = get_logging_context()
        assert context["subscription_id"] == "orders#1"
        assert context["collection"] == "orders"
        assert "subscription_id" not in get_logging_context()


class TestLoggers:
    def test_adapter_adds_context(self, caplog):
        set_correlation_id("req-1")
        logger = get_logger("mdb_compat.tests")

        with caplog.at_level(logging.INFO, logger="mdb_compat.tests"):
            logger.info("hello", extra={"document_id": "a1"})

        record = caplog.records[-1]
        assert record.correlation_id == "req-1"
        assert record.document_id == "a1"

    def test_log_operation(self, caplog):
        logger = logging.getLogger("mdb_compat.tests.ops")

        with caplog.at_level(logging.DEBUG, logger="mdb_compat.tests.ops"):
            log_operation(logger, "query.get", success=False, duration_ms=12.345, collection="orders")

        record = caplog.records[-1]
        assert record.getMessage() == "Operation failed: query.get (duration: 12.35ms)"
        assert record.duration_ms == 12.35
        assert record.collection == "orders"

    @pytest.mark.asyncio
    async def test_listener_failures_are_tagged(self, database, connector, settle, caplog):
        channel = RealtimeChannel("ws://push.test/ws", database, connector=connector)
        await channel.connect()

        def broken(snapshot):
            raise RuntimeError("listener bug")

        with caplog.at_level(logging.ERROR, logger="mdb_compat.realtime.channel"):
            channel.on_collection_snapshot("orders", None, broken)
            await settle()

        [record] = [r for r in caplog.records if r.exc_info]
        assert record.collection == "orders"
        assert record.subscription_id.startswith("orders#")
        await channel.close()
