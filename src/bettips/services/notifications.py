"""
Outbound email for account events.

Sends are synchronous and best-effort: a failure is logged and reported as
False, never raised. Callers decide whether a failed send matters.
"""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from ..settings import Settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    def send_welcome(self, email: str, name: str | None = None) -> bool:
        subject = "Welcome to BetTips"
        body = f"""
Hi {name or 'there'},

Thanks for signing up to BetTips. You're on the Free plan, which gives you
access to our free tips. Upgrade any time to unlock premium tips and parlays.

Start browsing: {self.settings.frontend_url}

---
BetTips
"""
        return self._send(email, subject, body)

    def send_password_reset(self, email: str, token: str) -> bool:
        link = f"{self.settings.frontend_url}/reset-password?token={token}"
        subject = "Reset your BetTips password"
        body = f"""
We received a request to reset your BetTips password.

Reset it here (valid for {self.settings.reset_token_minutes} minutes):
{link}

If you didn't ask for this, you can ignore this email.

---
BetTips
"""
        return self._send(email, subject, body)

    def _send(self, to_email: str, subject: str, body: str) -> bool:
        if not self.enabled:
            logger.debug("SMTP not configured, skipping email '%s' to %s", subject, to_email)
            return False
        try:
            _send_smtp_email(
                self.settings.smtp_host,
                self.settings.smtp_port,
                self.settings.smtp_user,
                self.settings.smtp_password,
                self.settings.smtp_from,
                to_email,
                subject,
                body,
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Failed to send email '%s' to %s: %s", subject, to_email, e)
            return False
        logger.info("Email '%s' sent to %s", subject, to_email)
        return True


def _send_smtp_email(
    host: str,
    port: int,
    username: str,
    password: str,
    from_email: str,
    to_email: str,
    subject: str,
    body: str,
) -> None:
    msg = MIMEMultipart()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    with smtplib.SMTP(host, port, timeout=10) as server:
        server.starttls()
        if username:
            server.login(username, password)
        server.sendmail(from_email, to_email, msg.as_string())
