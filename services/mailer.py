"""Outbound email.

Mail is dispatched after the token that a message carries has been
committed. Delivery failures are logged and reported as ``False``; they never
undo the operation that triggered them. Message bodies contain one-time
links and are therefore never written to the log.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import quote

from flask import current_app

logger = logging.getLogger(__name__)


def _build_message(to: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = current_app.config.get("MAIL_DEFAULT_SENDER")
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    return message


def _send_smtp(message: EmailMessage) -> None:
    config = current_app.config
    with smtplib.SMTP(
        config["MAIL_SERVER"], config.get("MAIL_PORT", 587), timeout=config.get("MAIL_TIMEOUT", 10)
    ) as smtp:
        if config.get("MAIL_USE_TLS"):
            smtp.starttls()
        if config.get("MAIL_USERNAME"):
            smtp.login(config["MAIL_USERNAME"], config.get("MAIL_PASSWORD") or "")
        smtp.send_message(message)


def outbox() -> list[EmailMessage]:
    """Messages captured by the ``memory`` backend."""

    return current_app.extensions.setdefault("mail_outbox", [])


def send(to: str, subject: str, body: str) -> bool:
    """Deliver a message with the configured backend. Returns delivery success."""

    backend = current_app.config.get("MAIL_BACKEND", "console")
    message = _build_message(to, subject, body)

    if backend == "memory":
        outbox().append(message)
        return True
    if backend == "console":
        logger.info("Email to %s: %s (console backend, not delivered)", to, subject)
        return True

    try:
        _send_smtp(message)
    except (smtplib.SMTPException, OSError):
        logger.warning("Failed to send '%s' to %s", subject, to, exc_info=True)
        return False
    logger.info("Email sent to %s: %s", to, subject)
    return True


def _frontend_link(path: str, token: str) -> str:
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return f"{base}/{path}?token={quote(token)}"


def send_verification_email(email: str, name: str, token: str) -> bool:
    link = _frontend_link("verify-email", token)
    body = (
        f"Hi {name},\n\n"
        "Please confirm your email address to activate your account:\n\n"
        f"{link}\n\n"
        "After verifying you will be asked to choose a password.\n"
        "If you did not request this, you can ignore this email.\n"
    )
    return send(email, "Verify your email address", body)


def send_password_reset_email(email: str, name: str, token: str) -> bool:
    link = _frontend_link("reset-password", token)
    body = (
        f"Hi {name},\n\n"
        "We received a request to reset your password. The link below is valid "
        "for a limited time and can be used once:\n\n"
        f"{link}\n\n"
        "If you did not request a reset, no action is needed.\n"
    )
    return send(email, "Reset your password", body)
