# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for geolens.logging_config: structlog + stdlib bridge."""

from __future__ import annotations

import json
import logging
import sys

import pytest
import structlog

from geolens.logging_config import bind_request_context, bind_target_url, clear_request_context, configure


@pytest.fixture(autouse=True)
def _reset_logging():
    """Ensure clean logging state before/after each test."""
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


class TestConsoleRenderer:
    """CLI mode: ConsoleRenderer (human-readable)."""

    def test_configure_console_mode(self):
        configure(json_output=False)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_console_output_is_human_readable(self, capsys):
        configure(json_output=False)
        logging.getLogger("test.console").info("hello world")
        captured = capsys.readouterr()
        assert "hello world" in captured.err
        assert not captured.err.strip().startswith("{")


class TestJSONRenderer:
    """Server mode: JSONRenderer (machine-parseable)."""

    def test_json_output_is_valid_json(self, capsys):
        configure(json_output=True)
        logging.getLogger("geolens.pipeline").info("json test")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["logger"] == "geolens.pipeline"
        assert parsed["level"] == "info"
        assert "timestamp" in parsed

    def test_percent_args_rendered(self, capsys):
        configure(json_output=True)
        logging.getLogger("geolens.fetcher").info("Fetch attempt %d/%d", 1, 4)
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["event"] == "Fetch attempt 1/4"


class TestRequestContext:
    def test_bound_values_in_output(self, capsys):
        configure(json_output=True)
        bind_request_context(request_id="req123", path="/geo")
        logging.getLogger("geolens.server").info("ctx test")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["request_id"] == "req123"
        assert parsed["path"] == "/geo"

    def test_bind_replaces_previous(self, capsys):
        configure(json_output=True)
        bind_request_context(request_id="one", extra="x")
        bind_request_context(request_id="two")
        logging.getLogger("t").info("m")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["request_id"] == "two"
        assert "extra" not in parsed

    def test_target_url_added_to_request_context(self, capsys):
        configure(json_output=True)
        bind_request_context(request_id="req9")
        bind_target_url("https://news.example.com/a")
        logging.getLogger("geolens.fetcher").info("fetching")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["request_id"] == "req9"
        assert parsed["target_url"] == "https://news.example.com/a"

    def test_clear(self, capsys):
        configure(json_output=True)
        bind_request_context(request_id="gone")
        clear_request_context()
        logging.getLogger("t").info("m")
        assert "request_id" not in json.loads(capsys.readouterr().err.strip())


class TestLogLevel:
    def test_default_level_is_info(self):
        configure()
        assert logging.getLogger().level == logging.INFO

    def test_custom_level(self):
        configure(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_level_falls_back_to_info(self):
        configure(level="NONEXISTENT")
        assert logging.getLogger().level == logging.INFO

    def test_noisy_loggers_quieted(self):
        configure(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
        assert logging.getLogger("readability.readability").level == logging.WARNING

    def test_timestamp_is_utc(self, capsys):
        configure(json_output=True)
        logging.getLogger("t").info("m")
        assert json.loads(capsys.readouterr().err.strip())["timestamp"].endswith("Z")


class TestMultipleConfigure:
    def test_no_handler_stacking(self):
        configure(json_output=False)
        configure(json_output=True)
        configure(json_output=False)
        assert len(logging.getLogger().handlers) == 1
