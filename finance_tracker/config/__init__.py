"""Configuration package."""

from finance_tracker.config.settings import (
    AppSettings,
    CloudinarySettings,
    GoogleSheetsSettings,
    MindeeSettings,
    Settings,
    SmtpSettings,
    get_settings,
    optional_section,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CloudinarySettings",
    "GoogleSheetsSettings",
    "MindeeSettings",
    "Settings",
    "SmtpSettings",
    "get_settings",
    "optional_section",
    "validate_all_settings",
]
