"""
Core Config - Unit Tests

Tests for:
- LoggingConfig environment loading
"""

import dataclasses

import pytest

from core.config.logging_config import LoggingConfig

pytestmark = [pytest.mark.unit]


class TestLoggingConfig:

    def test_fields_are_the_ones_the_logger_reads(self):
        names = {f.name for f in dataclasses.fields(LoggingConfig)}

        assert names == {"log_level", "log_format", "log_file", "enable_console"}

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        monkeypatch.setenv("LOG_FILE", "/tmp/orders.log")
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = LoggingConfig.from_env()

        assert config.log_level == "INFO"
        assert config.log_file == "/tmp/orders.log"

    def test_development_defaults_to_debug(self, monkeypatch):
        monkeypatch.setenv("ENV", "development")
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        assert LoggingConfig.from_env().log_level == "DEBUG"
