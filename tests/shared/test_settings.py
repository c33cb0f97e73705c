"""Tests for FaultlineSettings loading."""

import pytest
from pydantic import ValidationError

from faultline.shared.infrastructure.config import (
    DEFAULT_PLATFORM_URL,
    DEFAULT_STACKTRACE_HELPER,
    FaultlineSettings,
)


class TestFaultlineSettings:
    """Settings defaults, environment overrides and YAML loading."""

    def test_defaults(self, monkeypatch):
        """Test that defaults describe the default guard and helpers."""
        monkeypatch.delenv("FAULTLINE_CLIENT_ID", raising=False)
        settings = FaultlineSettings()

        assert settings.stacktrace_helper == DEFAULT_STACKTRACE_HELPER
        assert settings.screenshot_helper is None
        assert settings.platform_url == DEFAULT_PLATFORM_URL
        assert settings.scope == "all"
        assert (settings.burst_count, settings.burst_seconds, settings.lifetime_count) == (10, 10.0, 20)
        assert settings.client_id is None

    def test_environment_override(self, monkeypatch):
        """Test that FAULTLINE_* variables are picked up."""
        monkeypatch.setenv("FAULTLINE_CLIENT_ID", "client-42")
        monkeypatch.setenv("FAULTLINE_BURST_COUNT", "3")

        settings = FaultlineSettings()

        assert settings.client_id == "client-42"
        assert settings.burst_count == 3

    def test_scope_is_normalized(self):
        """Test that scope accepts any casing."""
        assert FaultlineSettings(scope=" Exceptions ").scope == "exceptions"

    def test_invalid_scope_rejected(self):
        """Test that unknown scopes fail validation."""
        with pytest.raises(ValidationError):
            FaultlineSettings(scope="everything")

    def test_negative_burst_count_rejected(self):
        """Test that burst thresholds must not be negative."""
        with pytest.raises(ValidationError):
            FaultlineSettings(burst_count=-1)

    def test_environment_flags(self):
        """Test development/production helpers."""
        assert FaultlineSettings(app_env="Production").is_production
        assert FaultlineSettings(app_env="development").is_development

    def test_from_yaml(self, tmp_path):
        """Test loading settings from a YAML document."""
        config = tmp_path / "faultline.yaml"
        config.write_text(
            "report_post_url: https://reports.example.com/errors\n"
            "report_post_headers:\n"
            "  X-Api-Key: abc\n"
            "client_id: client-7\n"
            "scope: EXCEPTIONS\n"
            "burst_seconds: 2.5\n",
            encoding="utf-8",
        )

        settings = FaultlineSettings.from_yaml(config)

        assert settings.report_post_url == "https://reports.example.com/errors"
        assert settings.report_post_headers == {"X-Api-Key": "abc"}
        assert settings.client_id == "client-7"
        assert settings.scope == "exceptions"
        assert settings.burst_seconds == 2.5

    def test_from_empty_yaml(self, tmp_path):
        """Test that an empty document yields defaults."""
        config = tmp_path / "empty.yaml"
        config.write_text("", encoding="utf-8")

        assert FaultlineSettings.from_yaml(config).scope == "all"

    def test_from_yaml_requires_mapping(self, tmp_path):
        """Test that non-mapping documents are rejected."""
        config = tmp_path / "list.yaml"
        config.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping"):
            FaultlineSettings.from_yaml(config)
