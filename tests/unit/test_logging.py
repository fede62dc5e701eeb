"""Tests for core/logging.py — structlog configuration."""

import json

import pytest
import structlog

from core.logging import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO", json_output=True)
        structlog.get_logger().info("cms_publish_succeeded", platform="Ghost")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "cms_publish_succeeded"
        assert event["platform"] == "Ghost"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filters_lower_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("warning", json_output=True)
        log = structlog.get_logger()
        log.info("hidden")
        log.warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("DEBUG", json_output=False)
        structlog.get_logger().debug("webflow_cache_invalidated", collection_id="c1")
        assert "webflow_cache_invalidated" in capsys.readouterr().out
