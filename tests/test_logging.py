"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from bucketgate.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
)


def _record(msg="Test message", **attrs) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        record = _record(
            "Rate limit exceeded",
            rate_limit_key="user:42",
            algorithm="token_bucket",
            backend="redis",
        )

        data = json.loads(JSONFormatter().format(record))

        assert data["rate_limit_key"] == "user:42"
        assert data["algorithm"] == "token_bucket"
        assert data["backend"] == "redis"
        assert "extra" not in data

    def test_json_format_with_extra_fields(self):
        data = json.loads(JSONFormatter().format(_record(evicted=3)))
        assert data["extra"]["evicted"] == 3

    def test_json_format_with_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))
        assert any("RuntimeError: boom" in line for line in data["exception"])


class TestContextFilter:
    def test_adds_missing_fields(self):
        record = _record()
        assert ContextFilter().filter(record) is True
        assert record.rate_limit_key is None
        assert record.request_id is None

    def test_keeps_existing_fields(self):
        record = _record(rate_limit_key="ip:abc")
        ContextFilter().filter(record)
        assert record.rate_limit_key == "ip:abc"


class TestLoggingConfig:
    def test_text_format_by_default(self):
        with patch("bucketgate.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "text"
            mock_settings.log_level = "debug"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "standard"
        assert config["loggers"]["bucketgate"]["level"] == "DEBUG"

    def test_json_format(self):
        with patch("bucketgate.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert "json" in config["formatters"]

    def test_log_context_drops_none(self):
        context = get_log_context(rate_limit_key="user:1", backend=None, path="/ping")
        assert context == {"rate_limit_key": "user:1", "path": "/ping"}

    def test_get_logger_name(self):
        assert get_logger("bucketgate.test").name == "bucketgate.test"
