"""Outgoing email.

Messages go out over SMTP when ``SMTP_HOST`` is configured. Without it the
message is written to the application log, which is how local development
picks up reset codes.
"""

import logging
import smtplib
from email.message import EmailMessage

from accounts.config import Settings, get_settings

logger = logging.getLogger("tenant_accounts")


class Mailer:
    """Sends plain-text notification emails."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _create_smtp_client(self) -> smtplib.SMTP:
        s = self.settings
        if s.SMTP_USE_SSL:
            return smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, timeout=30)
        server = smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=30)
        if s.SMTP_USE_TLS:
            server.starttls()
        return server

    def send(self, to_email: str, subject: str, body: str) -> None:
        """Send a message. Raises smtplib.SMTPException or OSError on delivery failure."""
        if not self.settings.SMTP_HOST:
            logger.info("EMAIL (smtp disabled) to=%s subject=%r\n%s", to_email, subject, body)
            return

        msg = EmailMessage()
        msg["From"] = self.settings.EMAIL_ADDRESS
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        server = self._create_smtp_client()
        try:
            if self.settings.SMTP_USERNAME:
                server.login(self.settings.SMTP_USERNAME, self.settings.SMTP_PASSWORD)
            server.send_message(msg)
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                pass

    def send_otp(self, to_email: str, code: str, ttl_minutes: int) -> bool:
        """Deliver a password reset code. Failures are logged, never raised."""
        body = (
            f"Your otp for resetting password is {code}.\n"
            "Please don't share it with anyone.\n"
            f"This OTP will expire in {ttl_minutes} minutes."
        )
        try:
            self.send(to_email, "OTP for reset password", body)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send OTP email to %s", to_email)
            return False
        return True

    def send_welcome(self, to_email: str, first_name: str, password: str) -> bool:
        """Send login details to an account created by an administrator."""
        body = (
            f"Hello {first_name},\n\n"
            "An account has been created for you.\n"
            f"Email: {to_email}\n"
            f"Temporary password: {password}\n\n"
            f"Sign in at {self.settings.LOGIN_APP_URL} and change your password."
        )
        try:
            self.send(to_email, "Your account has been created", body)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send welcome email to %s", to_email)
            return False
        return True


_mailer: Mailer | None = None


def get_mailer() -> Mailer:
    """Get singleton mailer instance."""
    global _mailer
    if _mailer is None:
        _mailer = Mailer()
    return _mailer
