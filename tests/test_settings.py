"""
Tests for client settings.
"""

import pytest
from pydantic import ValidationError

from trailsync.settings import Settings, clear_settings_cache, get_settings


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        settings = Settings()

        assert settings.env == "local"
        assert settings.api_base_url == "http://localhost:8080/api"
        assert settings.poll_interval_seconds == 3.0
        assert settings.max_active_trails == 3

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("TRAILSYNC_API_BASE_URL", "https://trails.example.com/api")
        monkeypatch.setenv("TRAILSYNC_MAX_ACTIVE_TRAILS", "5")

        settings = Settings()

        assert settings.api_base_url == "https://trails.example.com/api"
        assert settings.max_active_trails == 5

    @pytest.mark.parametrize("interval", ["0", "-1", "61"])
    def test_rejects_bad_poll_interval(self, monkeypatch, interval):
        monkeypatch.setenv("TRAILSYNC_POLL_INTERVAL_SECONDS", interval)

        with pytest.raises(ValidationError, match="POLL_INTERVAL_SECONDS"):
            Settings()

    def test_collects_every_error(self, monkeypatch):
        """Test a remote environment reports all misconfigurations at once."""
        monkeypatch.setenv("TRAILSYNC_ENV", "prod")
        monkeypatch.setenv("TRAILSYNC_MAX_ACTIVE_TRAILS", "0")

        with pytest.raises(ValidationError) as exc_info:
            Settings()

        message = str(exc_info.value)
        assert "MAX_ACTIVE_TRAILS" in message
        assert "must not point to localhost" in message
        assert "TRAILSYNC_API_TOKEN is required" in message

    def test_remote_environment_with_token(self, monkeypatch):
        monkeypatch.setenv("TRAILSYNC_ENV", "staging")
        monkeypatch.setenv("TRAILSYNC_API_BASE_URL", "https://staging.example.com/api")
        monkeypatch.setenv("TRAILSYNC_API_TOKEN", "token")

        assert Settings().env == "staging"

    def test_get_settings_is_cached(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("TRAILSYNC_MAX_ACTIVE_TRAILS", "7")

        assert get_settings() is first

        clear_settings_cache()
        assert get_settings().max_active_trails == 7
