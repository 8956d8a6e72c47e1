"""
Outbound mail. Only password reset uses it today.

Without SMTP_SERVER configured (development, tests) the message is logged
instead of sent, so the reset flow stays usable locally.
"""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class MailError(RuntimeError):
    pass


def send_email(config: dict, *, to: str, subject: str, body: str) -> bool:
    """Send a plain-text email. Returns False when delivery was skipped (no SMTP configured)."""
    smtp_server = (config.get("SMTP_SERVER") or "").strip()
    email_from = (config.get("EMAIL_FROM") or "").strip()

    if not smtp_server:
        logger.info("SMTP_SERVER not configured; email not sent. to=%s subject=%s\n%s", to, subject, body)
        return False
    if not email_from:
        raise MailError("Email from address not configured (EMAIL_FROM environment variable missing)")

    msg = EmailMessage()
    msg["From"] = email_from
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    smtp_port = (config.get("SMTP_PORT") or "").strip()
    try:
        server = smtplib.SMTP(smtp_server, int(smtp_port)) if smtp_port else smtplib.SMTP(smtp_server)
        with server:
            if config.get("SMTP_USE_TLS", True):
                server.starttls()
            username = (config.get("SMTP_USERNAME") or "").strip()
            if username:
                server.login(username, config.get("SMTP_PASSWORD") or "")
            server.send_message(msg)
    except (OSError, smtplib.SMTPException) as e:
        logger.error("Email delivery failed to=%s: %s", to, e)
        raise MailError(f"Failed to send email: {e}") from e

    logger.info("Email sent to=%s subject=%s", to, subject)
    return True
