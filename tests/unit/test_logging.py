"""Unit tests for logging configuration."""

import logging

import pytest
import structlog

from apos_static.utils.logging import configure_logging


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def test_http_client_loggers_quieted(self) -> None:
        configure_logging("DEBUG", "development")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_production_renders_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO", "production")
        structlog.get_logger("test").info("hello", answer=42)

        err = capsys.readouterr().err
        assert '"event": "hello"' in err
        assert '"answer": 42' in err

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("WARNING", "production")
        structlog.get_logger("test").info("hidden")

        assert "hidden" not in capsys.readouterr().err

    def test_invalid_level(self) -> None:
        with pytest.raises(AttributeError):
            configure_logging("NOPE")
