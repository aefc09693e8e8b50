"""Tests for structured logging configuration."""

import json
import logging
import re

import pytest
import structlog

from archplan.logging_config import (
    bind_job_context,
    clear_job_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)


def strip_ansi(text):
    """Strip ANSI escape sequences from text."""
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def find_event(output, event):
    entries = [json.loads(line) for line in output.strip().split("\n") if line.strip()]
    return next((e for e in entries if e.get("event") == event), None)


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration around each test."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestLoggingSetup:
    def test_json_format(self, capsys):
        setup_logging(service_name="plan-worker", log_format="json", log_level="INFO")

        get_logger().info("plan_generation_started", project_id="p1", attempt=2)

        entry = find_event(capsys.readouterr().out, "plan_generation_started")
        assert entry is not None
        assert entry["service"] == "plan-worker"
        assert entry["project_id"] == "p1"
        assert entry["attempt"] == 2
        assert entry["level"] == "info"
        assert "timestamp" in entry
        assert "func_name" in entry

    def test_console_format(self, capsys):
        setup_logging(service_name="plan-worker", log_format="console", log_level="INFO")

        get_logger().info("upload_created", upload_id=7)

        output = strip_ansi(capsys.readouterr().out)
        assert "upload_created" in output
        assert "upload_id=7" in output

    def test_reads_environment(self, monkeypatch, capsys):
        monkeypatch.setenv("SERVICE_NAME", "env_service")
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        setup_logging()
        get_logger().debug("debug_event")

        entry = find_event(capsys.readouterr().out, "debug_event")
        assert entry is not None
        assert entry["service"] == "env_service"

    def test_level_filtering(self, capsys):
        setup_logging(service_name="plan-worker", log_format="console", log_level="WARNING")
        logger = get_logger()

        logger.info("info_event")
        logger.warning("warning_event")

        output = strip_ansi(capsys.readouterr().out)
        assert "info_event" not in output
        assert "warning_event" in output


class TestJobContext:
    def test_job_fields_on_every_line(self, capsys):
        setup_logging(service_name="plan-worker", log_format="json", log_level="INFO")

        set_correlation_id("corr-1")
        bind_job_context(project_id="p1", attempt=1)
        get_logger().info("llm_call_started")

        entry = find_event(capsys.readouterr().out, "llm_call_started")
        assert entry["correlation_id"] == "corr-1"
        assert entry["project_id"] == "p1"
        assert entry["attempt"] == 1
        assert get_correlation_id() == "corr-1"

    def test_clear_job_context(self, capsys):
        setup_logging(service_name="plan-worker", log_format="json", log_level="INFO")

        bind_job_context(project_id="p1", attempt=1)
        clear_job_context("project_id", "attempt")
        get_logger().info("after_job")

        entry = find_event(capsys.readouterr().out, "after_job")
        assert "project_id" not in entry
        assert entry["service"] == "plan-worker"
