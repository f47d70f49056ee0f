"""Tests for structured logging helpers."""

import json
import logging

import pytest

from services.logging_config import (
    JsonFormatter,
    ReadableFormatter,
    agent_id_var,
    get_logger,
    log_performance,
    request_id_var,
)


def make_record(message="Sent SOA", extra_data=None):
    record = logging.LogRecord("soa.test", logging.INFO, __file__, 10, message, None, None)
    if extra_data is not None:
        record.extra_data = extra_data
    return record


@pytest.fixture
def correlation():
    request_token = request_id_var.set("req-1")
    agent_token = agent_id_var.set("agent-1")
    yield
    request_id_var.reset(request_token)
    agent_id_var.reset(agent_token)


class TestFormatters:
    """Tests for JSON and readable output."""

    def test_json_includes_correlation(self, correlation):
        line = JsonFormatter().format(make_record(extra_data={"soa_id": "soa-1"}))
        entry = json.loads(line)

        assert entry["message"] == "Sent SOA"
        assert entry["level"] == "INFO"
        assert entry["request_id"] == "req-1"
        assert entry["agent_id"] == "agent-1"
        assert entry["soa_id"] == "soa-1"

    def test_json_without_context(self):
        entry = json.loads(JsonFormatter().format(make_record()))
        assert "request_id" not in entry

    def test_readable_appends_fields(self, correlation):
        line = ReadableFormatter().format(make_record(extra_data={"soa_id": "soa-1"}))
        assert "[soa.test] Sent SOA" in line
        assert "request_id=req-1" in line
        assert "soa_id=soa-1" in line


class TestContextLogger:
    """Tests for get_logger."""

    def test_bound_fields_merge_with_call_fields(self, caplog):
        logger = get_logger("soa.test", component="sweep")

        with caplog.at_level(logging.INFO, logger="soa.test"):
            logger.info("expired", extra={"extra_data": {"count": 2}})

        assert caplog.records[0].extra_data == {"component": "sweep", "count": 2}


class TestLogPerformance:
    """Tests for the timing decorator."""

    def test_sync_success(self, caplog):
        @log_performance("render")
        def render():
            return b"%PDF"

        with caplog.at_level(logging.INFO, logger="performance"):
            assert render() == b"%PDF"

        assert caplog.records[0].getMessage() == "render completed"
        assert "duration_ms" in caplog.records[0].extra_data

    def test_sync_failure_reraises(self, caplog):
        @log_performance()
        def explode():
            raise RuntimeError("boom")

        with caplog.at_level(logging.INFO, logger="performance"):
            with pytest.raises(RuntimeError):
                explode()

        assert caplog.records[0].getMessage() == "explode failed"
        assert caplog.records[0].extra_data["error"] == "boom"

    @pytest.mark.asyncio
    async def test_async(self, caplog):
        @log_performance("verify")
        async def verify():
            return True

        with caplog.at_level(logging.INFO, logger="performance"):
            assert await verify()

        assert caplog.records[0].getMessage() == "verify completed"
