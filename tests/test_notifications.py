#!/usr/bin/env python3
"""
Email rendering, SMTP message assembly and best-effort dispatch.
Nothing here opens a network connection.
"""

import pytest
import sys
import os
from datetime import date
from types import SimpleNamespace

# Add app to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from consultbook.core.config import Settings
from consultbook.services.email_templates import RENDERERS, render
from consultbook.services.notifications import (
    LoggingNotifier,
    Notification,
    NotificationDispatcher,
    NotificationKind,
    SmtpNotifier,
    build_notifier,
)
from conftest import FailingNotifier, RecordingNotifier

FRONTEND = "https://book.acmecorp.com/"

BOOKING_PAYLOAD = {
    "name": "Jane <Doe>",
    "email": "jane@acmecorp.com",
    "company": "Acme & Sons",
    "date": "2030-01-08",
    "time": "14:00",
    "token": "ab" * 32,
}


def _booking():
    return SimpleNamespace(
        name="Jane Doe", email="jane@acmecorp.com", company="Acme Corp",
        date=date(2030, 1, 8), time="14:00", confirmation_token="cd" * 32,
    )


@pytest.mark.unit
class TestTemplates:

    def test_every_kind_has_a_renderer(self):
        assert set(RENDERERS) == {kind.value for kind in NotificationKind}

    def test_confirmation_request_links_and_formatting(self):
        email = render("booking_confirmation_request", BOOKING_PAYLOAD, FRONTEND)
        assert email.subject == "Please Confirm Your Consultation Booking"
        assert f"https://book.acmecorp.com/booking/confirm/{'ab' * 32}" in email.html
        assert f"https://book.acmecorp.com/booking/manage/{'ab' * 32}" in email.text
        assert "Tuesday, January 8, 2030" in email.text
        assert "2:00 PM" in email.text

    def test_user_values_are_escaped_in_html(self):
        email = render("booking_confirmation_request", BOOKING_PAYLOAD, FRONTEND)
        assert "Jane &lt;Doe&gt;" in email.html
        assert "Acme &amp; Sons" in email.html
        assert "<Doe>" not in email.html

    @pytest.mark.parametrize("event,heading", [
        ("new", "New Consultation Booking"),
        ("rescheduled", "Consultation Rescheduled"),
        ("cancelled", "Consultation Cancelled"),
    ])
    def test_admin_notification_heading(self, event, heading):
        email = render("admin_notification", {**BOOKING_PAYLOAD, "event": event}, FRONTEND)
        assert email.subject == heading
        assert "jane@acmecorp.com" in email.text

    def test_password_reset_mentions_expiry(self):
        email = render("password_reset", {"token": "t0k", "ttl_minutes": 60}, FRONTEND)
        assert "https://book.acmecorp.com/reset-password?token=t0k" in email.html
        assert "60 minutes" in email.text

    def test_contact_message_subject(self):
        payload = {"name": "Bob", "email": "bob@acmecorp.com", "company": "Bobco", "message": "Hi\nthere"}
        email = render("contact_message", payload, FRONTEND)
        assert email.subject == "New Contact Form Message from Bob"
        assert "Hi\nthere" in email.text


@pytest.mark.unit
class TestSmtpNotifier:

    def _settings(self, **overrides):
        values = dict(
            _env_file=None,
            SMTP_HOST="smtp.acmecorp.com",
            SMTP_USER="mailer@acmecorp.com",
            SMTP_PASSWORD="pw",
            EMAIL_FROM="Consultations <no-reply@acmecorp.com>",
            FRONTEND_URL=FRONTEND,
        )
        values.update(overrides)
        return Settings(**values)

    def test_build_message_headers_and_parts(self):
        notifier = SmtpNotifier(self._settings())
        msg = notifier.build_message(Notification(NotificationKind.BOOKING_CANCELLED, "jane@acmecorp.com",
                                                  BOOKING_PAYLOAD))
        assert msg["To"] == "jane@acmecorp.com"
        assert msg["From"] == "Consultations <no-reply@acmecorp.com>"
        assert msg["Subject"] == "Your Consultation Has Been Cancelled"
        assert msg["Reply-To"] is None
        assert [part.get_content_type() for part in msg.iter_parts()] == ["text/plain", "text/html"]

    def test_contact_message_replies_to_sender(self):
        notifier = SmtpNotifier(self._settings())
        msg = notifier.build_message(Notification(
            NotificationKind.CONTACT_MESSAGE, "owner@acmecorp.com",
            {"name": "Bob", "email": "bob@acmecorp.com", "company": "Bobco", "message": "Hello"},
        ))
        assert msg["Reply-To"] == "bob@acmecorp.com"

    def test_build_notifier_picks_transport(self):
        assert isinstance(build_notifier(self._settings()), SmtpNotifier)
        assert isinstance(build_notifier(self._settings(SMTP_HOST=None)), LoggingNotifier)


class TestDispatcher:

    async def test_booking_created_fans_out_to_booker_and_admin(self):
        recorder = RecordingNotifier()
        dispatcher = NotificationDispatcher(recorder, admin_email="owner@acmecorp.com")
        dispatcher.booking_created(_booking())
        await dispatcher.drain()

        assert sorted(recorder.kinds()) == ["admin_notification", "booking_confirmation_request"]
        assert {n.to for n in recorder.sent} == {"jane@acmecorp.com", "owner@acmecorp.com"}

    async def test_no_admin_email_skips_admin_copy(self):
        recorder = RecordingNotifier()
        dispatcher = NotificationDispatcher(recorder)
        dispatcher.booking_rescheduled(_booking())
        await dispatcher.drain()
        assert recorder.kinds() == ["booking_rescheduled"]

    async def test_failures_are_counted_not_raised(self):
        failing = FailingNotifier()
        dispatcher = NotificationDispatcher(failing, admin_email="owner@acmecorp.com")
        dispatcher.booking_cancelled(_booking())
        await dispatcher.drain()
        assert failing.attempts == 2
        assert dispatcher.failures == 2

    async def test_password_reset_payload(self):
        recorder = RecordingNotifier()
        dispatcher = NotificationDispatcher(recorder, reset_ttl_minutes=15)
        dispatcher.password_reset("admin@acmecorp.com", "tok")
        await dispatcher.drain()
        assert recorder.sent[0].payload == {"token": "tok", "ttl_minutes": 15}

    async def test_contact_message_is_inline(self):
        recorder = RecordingNotifier()
        dispatcher = NotificationDispatcher(recorder, admin_email="owner@acmecorp.com")
        ok = await dispatcher.contact_message(name="Bob", email="bob@acmecorp.com", company="Bobco",
                                              message="Hello")
        assert ok is True
        assert recorder.sent[0].to == "owner@acmecorp.com"

    async def test_contact_message_reports_failure(self):
        assert await NotificationDispatcher(FailingNotifier(), admin_email="owner@acmecorp.com").contact_message(
            name="Bob", email="bob@acmecorp.com", company="Bobco", message="Hello") is False
        assert await NotificationDispatcher(RecordingNotifier()).contact_message(
            name="Bob", email="bob@acmecorp.com", company="Bobco", message="Hello") is False

    async def test_logging_notifier_never_raises(self):
        await LoggingNotifier().send(Notification(NotificationKind.PASSWORD_RESET, "a@acmecorp.com", {}))
