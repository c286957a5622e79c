"""Tests for configuration module."""

import os
from unittest.mock import patch

from openai_instrumentation.config import Settings


def test_settings_loads_from_env(settings: Settings):
    """Test that settings loads values from environment variables."""
    assert settings.openai_base_url == "https://example.openai.azure.com:8443/openai/v1"
    assert settings.openai_api_key == "test-key"
    assert settings.openai_model == "gpt-test"
    assert settings.log_level == "DEBUG"


def test_settings_has_telemetry_defaults(settings: Settings):
    """Recording switches are off unless explicitly enabled."""
    assert settings.record_events is False
    assert settings.record_content is False
    assert settings.telemetry_console_export is False
    assert settings.openai_timeout == 60.0


def test_settings_recording_switches_from_env(mock_env_vars):
    """Experimental recording switches are read from their env aliases."""
    with patch.dict(os.environ, {
        "OPENAI_EXPERIMENTAL_RECORD_EVENTS": "true",
        "OPENAI_EXPERIMENTAL_RECORD_CONTENT": "1",
    }):
        settings = Settings()

    assert settings.record_events is True
    assert settings.record_content is True


def test_settings_has_logging_file_defaults(settings: Settings):
    """Test that file logging settings have correct defaults."""
    assert settings.log_file == ""
    assert settings.log_file_max_bytes == 10_485_760  # 10 MB
    assert settings.log_file_backup_count == 5
