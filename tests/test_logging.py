"""Tests for formation_tracker.logging."""

from __future__ import annotations

import json
import logging

import structlog

from formation_tracker.logging import setup_logging


class TestSetupLogging:
    def test_json_lines_on_stderr(self, capsys):
        setup_logging(json=True)
        structlog.get_logger().info("fusion_started", geocode=True)

        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err)
        assert event["event"] == "fusion_started"
        assert event["level"] == "info"
        assert event["geocode"] is True
        assert "timestamp" in event

    def test_console_mode(self, capsys):
        setup_logging(json=False)
        structlog.get_logger().warning("geocache_cleared", removed=3)
        err = capsys.readouterr().err
        assert "geocache_cleared" in err
        assert "removed=3" in err

    def test_level_filters_and_is_case_insensitive(self, capsys):
        setup_logging(json=True, level="warning")
        logger = structlog.get_logger()
        logger.info("fusion_progress")
        logger.warning("fusion_geocoding_failed")

        err = capsys.readouterr().err
        assert "fusion_progress" not in err
        assert "fusion_geocoding_failed" in err

    def test_stdlib_loggers_only_warn(self):
        setup_logging(level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
