"""
Outgoing email.

Callers depend on the `EmailSender` interface only. SMTP delivery runs in a
worker thread; when SMTP is not configured, messages are logged instead.
Delivery failures are logged and never raised to the caller.
"""

from __future__ import annotations

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from html import escape

import structlog
from fastapi import Request

from app.core.config import Settings, get_settings

log = structlog.get_logger()


class EmailSender(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> None:
        """Deliver one message. May raise on transport failure."""


class SmtpEmailSender(EmailSender):
    def __init__(self, settings: Settings):
        self.settings = settings

    def _send_sync(self, to: str, subject: str, html: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.settings.email_from
        msg["To"] = to
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_user:
                smtp.login(self.settings.smtp_user, self.settings.smtp_password)
            smtp.send_message(msg)

    async def send(self, to: str, subject: str, html: str) -> None:
        await asyncio.to_thread(self._send_sync, to, subject, html)


class LogEmailSender(EmailSender):
    """Development sender: writes the message to the log."""

    async def send(self, to: str, subject: str, html: str) -> None:
        log.info("email.logged", to=to, subject=subject, html=html)


def build_email_sender(settings: Settings | None = None) -> EmailSender:
    settings = settings or get_settings()
    if settings.smtp_host:
        return SmtpEmailSender(settings)
    return LogEmailSender()


async def deliver(sender: EmailSender, to: str, subject: str, html: str) -> bool:
    """Send one message; failures are logged and reported as False."""
    try:
        await sender.send(to, subject, html)
    except Exception as exc:  # noqa: BLE001 - mail failures must not fail the request
        log.warning("email.failed", to=to, subject=subject, error=str(exc)[:400])
        return False
    log.info("email.sent", to=to, subject=subject)
    return True


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def _layout(title: str, body: str, link: str, action: str) -> str:
    return (
        f"<h1>{escape(title)}</h1>"
        f"<p>{body}</p>"
        f'<p><a href="{escape(link, quote=True)}">{escape(action)}</a></p>'
    )


def invitation_email(app_name: str, sender_name: str, context_name: str, link: str) -> tuple[str, str]:
    subject = f"{sender_name} invited you to join {context_name} on {app_name}"
    body = f"{escape(sender_name)} invited you to join <strong>{escape(context_name)}</strong>."
    return subject, _layout(subject, body, link, "Accept invitation")


def verification_email(app_name: str, link: str) -> tuple[str, str]:
    subject = f"Verify your email address for {app_name}"
    return subject, _layout(subject, "Confirm this address to finish signing up.", link, "Verify email")


def password_reset_email(app_name: str, link: str) -> tuple[str, str]:
    subject = f"Reset your {app_name} password"
    body = "Someone requested a password reset for this account. Ignore this email if it was not you."
    return subject, _layout(subject, body, link, "Reset password")


def get_mailer(request: Request) -> EmailSender:
    """FastAPI dependency: the sender created at app startup."""
    return request.app.state.mailer
