"""
Tests for environment-driven configuration.
"""

import pytest

from finance_tracker.config import AppSettings, get_settings, optional_section, validate_all_settings


@pytest.fixture(autouse=True)
def clean_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAppSettings:
    """Tests for the main settings section."""

    def test_defaults(self, monkeypatch):
        for name in ("UPCOMING_WINDOW_DAYS", "CURRENCY_SYMBOL", "MAX_UPLOAD_SIZE_MB", "ADMIN_EMAILS"):
            monkeypatch.delenv(name, raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.upcoming_window_days == 7
        assert settings.currency_symbol == "$"
        assert settings.max_upload_size_bytes == 10 * 1024 * 1024
        assert settings.supported_formats_list == ["jpg", "jpeg", "png", "webp"]
        assert settings.admin_emails_list == []

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("UPCOMING_WINDOW_DAYS", "14")
        monkeypatch.setenv("ADMIN_EMAILS", " Boss@Example.com , ops@example.com ,")
        settings = AppSettings(_env_file=None)
        assert settings.upcoming_window_days == 14
        assert settings.admin_emails_list == ["boss@example.com", "ops@example.com"]

    def test_upload_limit_bounds(self, monkeypatch):
        monkeypatch.setenv("MAX_UPLOAD_SIZE_MB", "500")
        with pytest.raises(ValueError):
            AppSettings(_env_file=None)


class TestOptionalSections:
    """Tests for partially configured deployments."""

    def test_missing_section_is_none(self, monkeypatch):
        monkeypatch.delenv("MINDEE_API_KEY", raising=False)
        monkeypatch.chdir("/")
        assert optional_section("mindee") is None

    def test_configured_section(self, monkeypatch):
        monkeypatch.setenv("MINDEE_API_KEY", "test-key")
        assert optional_section("mindee").api_key == "test-key"

    def test_validate_all_reports_errors(self, monkeypatch):
        monkeypatch.delenv("CLOUDINARY_CLOUD_NAME", raising=False)
        monkeypatch.delenv("CLOUDINARY_API_KEY", raising=False)
        monkeypatch.delenv("CLOUDINARY_API_SECRET", raising=False)
        monkeypatch.chdir("/")
        status = validate_all_settings()
        assert status["cloudinary"] is False
        assert "cloudinary_error" in status
        assert status["app"] is True
