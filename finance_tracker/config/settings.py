"""
Configuration Management for the Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here so every external dependency
(storage backend, image hosting, OCR, SMTP relay) is visible in one place
and can be validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per collection is created on demand; only the audit
    # sheet name is configurable.
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class CloudinarySettings(BaseSettings):
    """Cloudinary receipt image hosting configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="receipts",
        description="Top-level folder receipt images are uploaded into"
    )


class MindeeSettings(BaseSettings):
    """Mindee OCR service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MINDEE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Mindee API key"
    )


class SmtpSettings(BaseSettings):
    """SMTP relay used to notify the administrator about new signups."""

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    host: str = Field(
        default="smtp-relay.brevo.com",
        description="SMTP relay host"
    )
    port: int = Field(
        default=587,
        ge=1,
        le=65535,
        description="SMTP relay port (STARTTLS)"
    )
    username: str = Field(
        ...,
        description="SMTP login"
    )
    password: str = Field(
        ...,
        description="SMTP password or API key"
    )
    sender: str = Field(
        ...,
        description="From address, e.g. 'Personal Finance App <noreply@example.com>'"
    )
    admin_email: str = Field(
        ...,
        description="Address that receives signup approval requests"
    )
    app_url: str = Field(
        default="http://localhost:8501",
        description="Public URL of the dashboard, linked from notification emails"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Socket timeout for the relay connection"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the structured log"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt upload size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )

    # Finance behaviour
    upcoming_window_days: int = Field(
        default=7,
        ge=0,
        description="How many days ahead a recurring item counts as upcoming"
    )
    default_category: str = Field(
        default="Uncategorized",
        description="Category used when an imported row has none"
    )
    default_account_name: str = Field(
        default="Checking",
        description="Account name used for imports when the user has no accounts"
    )
    currency_symbol: str = Field(
        default="$",
        description="Symbol used when formatting amounts in the UI"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a transaction can be dated before we warn"
    )

    # Access control
    admin_emails: str = Field(
        default="",
        description="Comma-separated emails approved as administrators on first sign-in"
    )

    @property
    def admin_emails_list(self) -> list[str]:
        return [e.strip().lower() for e in self.admin_emails.split(",") if e.strip()]

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access. Sub-settings are built
    lazily so the app can run with only part of its services configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def mindee(self) -> MindeeSettings:
        return MindeeSettings()

    @property
    def smtp(self) -> SmtpSettings:
        return SmtpSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `<setting_name>_error` entry for every section that failed.
    """
    results = {}
    settings = get_settings()

    sections = ["google_sheets", "cloudinary", "mindee", "smtp", "app"]
    for name in sections:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results


def optional_section(name: str) -> Optional[BaseSettings]:
    """Return a configured settings section, or None when it is incomplete."""
    try:
        return getattr(get_settings(), name)
    except Exception:
        return None
