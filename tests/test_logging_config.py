"""Tests for structlog configuration."""

import io
import json
import logging

import pytest
import structlog

from ledger_recovery.exceptions import ConfigurationError
from ledger_recovery.logging_config import configure_logging


class TestConfigureLogging:
    def test_json_output(self):
        stream = io.StringIO()
        configure_logging("INFO", json_output=True, stream=stream)

        structlog.get_logger().info("scan_started", size=10)

        event = json.loads(stream.getvalue())
        assert event["event"] == "scan_started"
        assert event["size"] == 10
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filtering(self):
        stream = io.StringIO()
        configure_logging("WARNING", stream=stream)

        logger = structlog.get_logger()
        logger.info("hidden")
        logger.warning("shown")

        output = stream.getvalue()
        assert "shown" in output
        assert "hidden" not in output

    def test_numeric_level(self):
        stream = io.StringIO()
        configure_logging(logging.DEBUG, stream=stream)
        structlog.get_logger().debug("scan_progress")
        assert "scan_progress" in stream.getvalue()

    def test_unknown_level(self):
        with pytest.raises(ConfigurationError) as exc_info:
            configure_logging("LOUD")
        assert exc_info.value.details["config_key"] == "log_level"

    @pytest.mark.parametrize("level", [15, "15", "  15 "])
    def test_non_standard_numeric_level(self, level):
        """Only the five standard levels can be filtered on."""
        with pytest.raises(ConfigurationError):
            configure_logging(level)
