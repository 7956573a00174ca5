"""
Admin notification over SMTP.

When someone signs up, the administrator gets an email with a link to the
Admin page so they can approve the account.

CRITICAL: Notification is fire-and-forget. A failure is reported to the
caller (who logs it) and never blocks the signup.
"""

import html
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

from finance_tracker.config import SmtpSettings


SIGNUP_SUBJECT = "New User Signup - Approval Needed"


class AdminNotifier:
    """Sends signup notifications through the configured SMTP relay."""

    def __init__(self, settings: SmtpSettings):
        self._settings = settings

    def build_signup_message(self, email: str, name: Optional[str]) -> EmailMessage:
        admin_url = self._settings.app_url.rstrip("/") + "/?page=admin"

        msg = EmailMessage()
        msg["From"] = self._settings.sender
        msg["To"] = self._settings.admin_email
        msg["Subject"] = SIGNUP_SUBJECT
        msg.set_content(
            f"New user registration\n\n"
            f"Email: {email}\n"
            f"Name: {name or 'Not provided'}\n\n"
            f"Approve this user from the admin dashboard: {admin_url}\n"
        )
        msg.add_alternative(
            "<h2>New User Registration</h2>"
            f"<p><strong>Email:</strong> {html.escape(email)}</p>"
            f"<p><strong>Name:</strong> {html.escape(name or 'Not provided')}</p>"
            "<p>Please go to the admin dashboard to approve this user:</p>"
            f'<a href="{html.escape(admin_url)}">Open Admin Dashboard</a>',
            subtype="html",
        )
        return msg

    def notify_signup(self, email: str, name: Optional[str] = None) -> tuple[bool, str]:
        """
        Email the administrator about a new signup.

        Returns:
            (sent, message). Never raises.
        """
        msg = self.build_signup_message(email, name)
        try:
            with smtplib.SMTP(
                self._settings.host,
                self._settings.port,
                timeout=self._settings.timeout_seconds,
            ) as s:
                s.starttls(context=ssl.create_default_context())
                s.login(self._settings.username, self._settings.password)
                s.send_message(msg)
            return True, "Email sent."
        except (smtplib.SMTPException, OSError) as e:
            return False, f"Email failed: {e}"
