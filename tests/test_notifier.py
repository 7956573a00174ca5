"""
Tests for the SMTP admin notifier. smtplib is mocked; nothing is sent.
"""

import smtplib
from unittest.mock import MagicMock, patch

from finance_tracker.config import SmtpSettings
from finance_tracker.services.notify import SIGNUP_SUBJECT, AdminNotifier


def make_settings() -> SmtpSettings:
    return SmtpSettings(
        host="smtp.example.com",
        port=587,
        username="relay-user",
        password="relay-pass",
        sender="Finance <noreply@example.com>",
        admin_email="admin@example.com",
        app_url="https://finance.example.com/",
    )


class TestAdminNotifier:
    """Tests for the signup email."""

    def test_message_contents(self):
        msg = AdminNotifier(make_settings()).build_signup_message("new@example.com", None)
        assert msg["Subject"] == SIGNUP_SUBJECT
        assert msg["To"] == "admin@example.com"
        body = msg.get_body(preferencelist=("plain",)).get_content()
        assert "new@example.com" in body
        assert "Not provided" in body
        assert "https://finance.example.com/?page=admin" in body

    def test_html_part_escapes_input(self):
        msg = AdminNotifier(make_settings()).build_signup_message("x@example.com", "<b>Eve</b>")
        html_body = msg.get_body(preferencelist=("html",)).get_content()
        assert "&lt;b&gt;Eve&lt;/b&gt;" in html_body

    @patch("finance_tracker.services.notify.email_service.smtplib.SMTP")
    def test_sends_with_starttls_and_login(self, smtp_cls):
        server = MagicMock()
        smtp_cls.return_value.__enter__.return_value = server

        sent, message = AdminNotifier(make_settings()).notify_signup("new@example.com", "New")

        assert sent is True
        assert message == "Email sent."
        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("relay-user", "relay-pass")
        server.send_message.assert_called_once()

    @patch("finance_tracker.services.notify.email_service.smtplib.SMTP")
    def test_failure_is_reported_not_raised(self, smtp_cls):
        server = MagicMock()
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        smtp_cls.return_value.__enter__.return_value = server

        sent, message = AdminNotifier(make_settings()).notify_signup("new@example.com")

        assert sent is False
        assert message.startswith("Email failed:")

    @patch("finance_tracker.services.notify.email_service.smtplib.SMTP")
    def test_connection_error_is_reported(self, smtp_cls):
        smtp_cls.side_effect = ConnectionRefusedError("refused")
        sent, _ = AdminNotifier(make_settings()).notify_signup("new@example.com")
        assert sent is False
