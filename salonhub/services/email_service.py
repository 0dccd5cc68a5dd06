"""
Email delivery through Flask-Mail.
Sending is skipped (and logged) when SMTP is not configured.
"""
import logging
from typing import Optional

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    cfg = current_app.config
    return bool(
        not cfg.get('MAIL_SUPPRESS_SEND', False)
        and cfg.get('MAIL_SERVER')
        and cfg.get('MAIL_USERNAME')
    )


def send_email(to_email: str, subject: str, body: str, html: Optional[str] = None) -> bool:
    """
    Send a plain text email (with optional HTML part).

    Returns:
        True if sent or skipped because mail is disabled, False on SMTP errors
    """
    if not to_email:
        logger.warning(f"[EMAIL] No recipient for '{subject}', skipped")
        return False

    if not _mail_enabled():
        logger.info(f"[MAIL DISABLED] '{subject}' to {to_email} skipped")
        return True

    try:
        msg = Message(
            subject=subject,
            recipients=[to_email],
            body=body,
            html=html,
            sender=current_app.config.get('MAIL_DEFAULT_SENDER'),
        )
        mail.send(msg)
        logger.info(f"[EMAIL] '{subject}' sent to {to_email}")
        return True
    except Exception as e:
        logger.error(f"[EMAIL] Failed to send '{subject}' to {to_email}: {e}")
        return False
