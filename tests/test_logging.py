"""
Tests for logging configuration and tracing spans.
"""

import json
import logging

import pytest

from habitnex.core.telemetry import span
from habitnex.logging_utils import ColorTextFormatter, JsonFormatter, colorize, configure_logging


def make_record(level=logging.INFO, msg="hello", **extra):
    record = logging.LogRecord("habitnex.test", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_json_keeps_extra_fields(self):
        payload = json.loads(JsonFormatter().format(make_record(user_id="user-1", cost=0.25)))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["user_id"] == "user-1"
        assert payload["cost"] == 0.25

    def test_json_serializes_unknown_types(self):
        from datetime import datetime

        payload = json.loads(JsonFormatter().format(make_record(at=datetime(2024, 1, 1))))
        assert payload["at"] == "2024-01-01 00:00:00"

    def test_text_formatter_colors_errors(self):
        formatter = ColorTextFormatter("%(levelname)s %(message)s", use_color=True)
        assert formatter.format(make_record(logging.ERROR, "boom")) == colorize("ERROR boom", "red")

    def test_text_formatter_without_color(self):
        formatter = ColorTextFormatter("%(levelname)s %(message)s", use_color=False)
        assert formatter.format(make_record(logging.ERROR, "boom")) == "ERROR boom"

    def test_colorize_disabled(self):
        assert colorize("text", "red", enabled=False) == "text"


class TestConfigureLogging:

    def teardown_method(self):
        configure_logging("production", "WARNING")

    def test_development_defaults_to_debug(self):
        configure_logging("development")
        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_level(self):
        configure_logging("production", "warning", log_format="text")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, ColorTextFormatter) for h in root.handlers)

    def test_json_format(self):
        configure_logging("production")
        assert any(isinstance(h.formatter, JsonFormatter) for h in logging.getLogger().handlers)


class TestSpan:

    def test_span_logs_ok(self, caplog):
        caplog.set_level(logging.DEBUG, logger="habitnex.telemetry")

        with span("enhance-habit.cache_lookup", cache_key="meditation") as attrs:
            attrs["hit"] = True

        end = [r for r in caplog.records if r.getMessage() == "span end"][0]
        assert end.span == "enhance-habit.cache_lookup"
        assert end.status == "ok"
        assert end.levelno == logging.DEBUG
        assert end.hit is True
        assert end.duration_ms >= 0

    def test_span_logs_error_and_reraises(self, caplog):
        caplog.set_level(logging.DEBUG, logger="habitnex.telemetry")

        with pytest.raises(ValueError):
            with span("enhance-habit.parse"):
                raise ValueError("bad json")

        end = [r for r in caplog.records if r.getMessage() == "span end"][0]
        assert end.status == "error"
        assert end.levelno == logging.WARNING
        assert end.error == "bad json"
