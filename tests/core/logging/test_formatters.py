"""Tests for JSON and console log formatters."""

import json
import logging
import sys

from core.logging.context import clear_log_context, set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter


def _make_record(msg="Test message", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def setup_method(self):
        clear_log_context()

    def teardown_method(self):
        clear_log_context()

    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_make_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "test.logger"
        assert entry["message"] == "Test message"
        assert entry["ts"].endswith("Z")
        assert "file" not in entry

    def test_source_location_for_errors(self):
        entry = json.loads(JSONFormatter().format(_make_record(level=logging.ERROR)))
        assert entry["file"] == "test.py:42"

    def test_context_injected(self):
        set_log_context(shard=2, domain="gateway", operation="login")
        entry = json.loads(JSONFormatter().format(_make_record()))
        assert entry["shard"] == "2"
        assert entry["domain"] == "gateway"
        assert entry["operation"] == "login"

    def test_extra_fields_and_numeric_coercion(self):
        record = _make_record(attempt="3", delay_seconds=1.5, total_shards=4, http_status="bad")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["attempt"] == 3
        assert entry["delay_seconds"] == 1.5
        assert entry["total_shards"] == 4
        assert entry["http_status"] is None

    def test_undeclared_extras_not_emitted(self):
        record = _make_record(http_method="GET", delay_source="header")
        entry = json.loads(JSONFormatter().format(record))
        assert "http_method" not in entry
        assert "delay_source" not in entry

    def test_urls_sanitized(self):
        record = _make_record(http_url="https://example.com/gateway?token=secret&v=10")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["http_url"] == "https://example.com/gateway?token=[REDACTED]&v=10"

    def test_exception_included(self):
        try:
            raise ValueError("bad shard")
        except ValueError:
            record = _make_record(level=logging.ERROR, exc_info=sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad shard"
        assert "Traceback" in entry["exception"]["stacktrace"]

    def test_unserializable_extras(self):
        record = _make_record(shards={1, 2})
        entry = json.loads(JSONFormatter().format(record))
        assert sorted(entry["shards"]) == [1, 2]


class TestConsoleFormatter:

    def setup_method(self):
        clear_log_context()

    def teardown_method(self):
        clear_log_context()

    def test_plain_message(self):
        output = ConsoleFormatter().format(_make_record())
        assert output.endswith(" - Test message")
        assert "INFO" in output

    def test_shard_tag_from_context(self):
        set_log_context(shard=3)
        output = ConsoleFormatter().format(_make_record())
        assert "[shard:3] Test message" in output

    def test_shard_tag_from_record(self):
        output = ConsoleFormatter().format(_make_record(shard=0))
        assert "[shard:0]" in output

    def test_trace_id_truncated(self):
        output = ConsoleFormatter().format(_make_record(trace_id="abcdef1234567890"))
        assert "[abcdef12]" in output
        assert "abcdef1234567890" not in output

    def test_domain_and_operation_in_prefix(self):
        set_log_context(domain="gateway", operation="discover")
        output = ConsoleFormatter().format(_make_record())
        assert "[gateway]" in output
        assert "[discover]" in output

    def test_exception_appended(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _make_record(level=logging.ERROR, exc_info=sys.exc_info())
        output = ConsoleFormatter().format(record)
        assert "RuntimeError: boom" in output
