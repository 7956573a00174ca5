"""Outbound notification services."""

from finance_tracker.services.notify.email_service import SIGNUP_SUBJECT, AdminNotifier

__all__ = ["AdminNotifier", "SIGNUP_SUBJECT"]
