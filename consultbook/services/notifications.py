# consultbook/services/notifications.py
"""
Outbound email notifications.

Booking mutations commit first and only then hand a notification to the
dispatcher, which sends it in a background task. A failed send is logged and
counted; it never changes the result the caller already got.
"""
from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Set

from consultbook.core.config import Settings
from consultbook.core.errors import ErrorSeverity, log_error
from consultbook.core.logging import get_logger
from consultbook.services.email_templates import render

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    BOOKING_CONFIRMATION_REQUEST = "booking_confirmation_request"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    BOOKING_CANCELLED = "booking_cancelled"
    ADMIN_NOTIFICATION = "admin_notification"
    PASSWORD_RESET = "password_reset"
    CONTACT_MESSAGE = "contact_message"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    to: str
    payload: Dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    async def send(self, notification: Notification) -> None:
        """Deliver or raise."""


class LoggingNotifier:
    """Used when SMTP isn't configured (local dev, CI): records instead of sending."""

    async def send(self, notification: Notification) -> None:
        logger.info("notification_not_sent", kind=notification.kind.value, to=notification.to,
                    reason="smtp_not_configured")


class SmtpNotifier:
    """Renders a notification and sends it over SMTP from a worker thread."""

    def __init__(self, settings: Settings, timeout: float = 10.0):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.use_ssl = settings.SMTP_USE_SSL
        self.sender = settings.EMAIL_FROM or settings.SMTP_USER
        self.frontend_url = settings.FRONTEND_URL
        self.timeout = timeout

    def build_message(self, notification: Notification) -> EmailMessage:
        rendered = render(notification.kind.value, notification.payload, self.frontend_url)
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = notification.to
        msg["Subject"] = rendered.subject
        if notification.kind is NotificationKind.CONTACT_MESSAGE:
            msg["Reply-To"] = notification.payload["email"]
        msg.set_content(rendered.text)
        msg.add_alternative(rendered.html, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        if self.use_ssl:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout,
                                  context=ssl.create_default_context()) as server:
                server.login(self.user, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls(context=ssl.create_default_context())
                server.login(self.user, self.password)
                server.send_message(msg)

    async def send(self, notification: Notification) -> None:
        msg = self.build_message(notification)
        await asyncio.to_thread(self._deliver, msg)
        logger.info("notification_sent", kind=notification.kind.value, to=notification.to)


def build_notifier(settings: Settings) -> Notifier:
    if settings.smtp_configured:
        return SmtpNotifier(settings)
    logger.warning("smtp_not_configured", detail="notifications will only be logged")
    return LoggingNotifier()


def _booking_payload(booking) -> Dict[str, Any]:
    return {
        "name": booking.name,
        "email": booking.email,
        "company": booking.company,
        "date": booking.date.isoformat(),
        "time": booking.time,
        "token": booking.confirmation_token,
    }


class NotificationDispatcher:
    """Best-effort fan-out of notifications as background tasks."""

    def __init__(self, notifier: Notifier, admin_email: Optional[str] = None,
                 reset_ttl_minutes: int = 60):
        self.notifier = notifier
        self.admin_email = admin_email
        self.reset_ttl_minutes = reset_ttl_minutes
        self._pending: Set[asyncio.Task] = set()
        self.failures = 0

    async def _send_logged(self, notification: Notification) -> bool:
        try:
            await self.notifier.send(notification)
            return True
        except Exception as e:
            self.failures += 1
            logger.warning("notification_failed", kind=notification.kind.value, to=notification.to, error=str(e))
            log_error(e, {"component": "notifications", "kind": notification.kind.value}, ErrorSeverity.MEDIUM)
            return False

    def dispatch(self, notification: Notification) -> asyncio.Task:
        task = asyncio.create_task(self._send_logged(notification))
        # Keep a reference until done so the task isn't garbage collected mid-send
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight sends (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _admin(self, event: str, booking) -> None:
        if not self.admin_email:
            return
        payload = _booking_payload(booking)
        payload["event"] = event
        self.dispatch(Notification(NotificationKind.ADMIN_NOTIFICATION, self.admin_email, payload))

    # ---------- booking lifecycle ----------

    def booking_created(self, booking) -> None:
        self.dispatch(Notification(NotificationKind.BOOKING_CONFIRMATION_REQUEST, booking.email,
                                   _booking_payload(booking)))
        self._admin("new", booking)

    def booking_rescheduled(self, booking) -> None:
        self.dispatch(Notification(NotificationKind.BOOKING_RESCHEDULED, booking.email, _booking_payload(booking)))
        self._admin("rescheduled", booking)

    def booking_cancelled(self, booking) -> None:
        self.dispatch(Notification(NotificationKind.BOOKING_CANCELLED, booking.email, _booking_payload(booking)))
        self._admin("cancelled", booking)

    # ---------- accounts / contact ----------

    def password_reset(self, email: str, token: str) -> None:
        self.dispatch(Notification(NotificationKind.PASSWORD_RESET, email,
                                   {"token": token, "ttl_minutes": self.reset_ttl_minutes}))

    async def contact_message(self, *, name: str, email: str, company: str, message: str) -> bool:
        """Sent inline: the message itself is the whole operation, nothing is stored."""
        if not self.admin_email:
            logger.warning("contact_message_dropped", reason="no_admin_email")
            return False
        return await self._send_logged(Notification(
            NotificationKind.CONTACT_MESSAGE,
            self.admin_email,
            {"name": name, "email": email, "company": company, "message": message},
        ))
