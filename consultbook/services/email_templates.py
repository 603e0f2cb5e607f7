# consultbook/services/email_templates.py
"""
Subject / HTML / plain-text bodies for every notification kind.
User-supplied values are HTML-escaped; everything else is fixed copy.
"""
from __future__ import annotations

from html import escape
from typing import Any, Dict, NamedTuple

from consultbook.core.business import format_date, format_time, parse_day_key


class RenderedEmail(NamedTuple):
    subject: str
    html: str
    text: str


def _layout(body: str) -> str:
    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
{body}
<p>Best regards,<br>The Consultations Team</p>
</div>"""


def _button(url: str, label: str) -> str:
    return (
        f'<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{escape(url)}" style="background-color: #0070f3; color: white; padding: 12px 24px; '
        f'text-decoration: none; border-radius: 5px; display: inline-block;">{escape(label)}</a></div>'
    )


def _when(p: Dict[str, Any]) -> tuple[str, str]:
    return format_date(parse_day_key(p["date"])), format_time(p["time"])


def _details(rows: list[tuple[str, str]]) -> str:
    items = "".join(f'<p style="margin: 5px 0;"><strong>{label}:</strong> {escape(value)}</p>' for label, value in rows)
    return f'<div style="background-color: #f8f9fa; padding: 15px; margin: 20px 0; border-radius: 5px;">{items}</div>'


def booking_confirmation_request(p: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    day, time = _when(p)
    confirm_url = f"{frontend_url}/booking/confirm/{p['token']}"
    manage_url = f"{frontend_url}/booking/manage/{p['token']}"
    html = _layout(
        "<h2>Booking Confirmation Required</h2>"
        f"<p>Dear {escape(p['name'])},</p>"
        "<p>Thank you for booking a consultation. Please confirm your booking with the button below:</p>"
        + _button(confirm_url, "Confirm My Booking")
        + _details([("Date", day), ("Time", time), ("Company", p.get("company") or "")])
        + f'<p>Need to make changes? <a href="{escape(manage_url)}">Reschedule or cancel your booking</a>.</p>'
        "<p>Your booking is not confirmed until you click the confirmation button above.</p>"
    )
    text = (
        f"Dear {p['name']},\n\nPlease confirm your consultation on {day} at {time}:\n{confirm_url}\n\n"
        f"Reschedule or cancel: {manage_url}\n"
    )
    return RenderedEmail("Please Confirm Your Consultation Booking", html, text)


def booking_rescheduled(p: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    day, time = _when(p)
    html = _layout(
        "<h2>Booking Update Confirmation</h2>"
        f"<p>Dear {escape(p['name'])},</p>"
        "<p>Your consultation has been rescheduled.</p>"
        + _details([("Date", day), ("Time", time), ("Company", p.get("company") or "")])
        + "<p>We look forward to speaking with you at the new time.</p>"
    )
    text = f"Dear {p['name']},\n\nYour consultation has been rescheduled to {day} at {time}.\n"
    return RenderedEmail("Your Consultation Has Been Rescheduled", html, text)


def booking_cancelled(p: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    day, time = _when(p)
    book_url = f"{frontend_url}/book"
    html = _layout(
        "<h2>Booking Cancellation Confirmation</h2>"
        f"<p>Dear {escape(p['name'])},</p>"
        f"<p>Your consultation on {escape(day)} at {escape(time)} has been cancelled.</p>"
        "<p>If you'd like to schedule a new consultation, you can do so at any time:</p>"
        + _button(book_url, "Schedule New Consultation")
    )
    text = f"Dear {p['name']},\n\nYour consultation on {day} at {time} has been cancelled.\nBook again: {book_url}\n"
    return RenderedEmail("Your Consultation Has Been Cancelled", html, text)


_ADMIN_HEADINGS = {
    "new": ("New Consultation Booking", "A new consultation has been booked:"),
    "rescheduled": ("Consultation Rescheduled", "A consultation has been rescheduled. New schedule:"),
    "cancelled": ("Consultation Cancelled", "A consultation has been cancelled:"),
}


def admin_notification(p: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    heading, intro = _ADMIN_HEADINGS[p["event"]]
    day, time = _when(p)
    rows = [
        ("Name", p["name"]),
        ("Email", p["email"]),
        ("Company", p.get("company") or ""),
        ("Date", day),
        ("Time", time),
    ]
    html = _layout(f"<h2>{heading}</h2><p>{intro}</p>" + _details(rows))
    text = f"{heading}\n\n" + "\n".join(f"{label}: {value}" for label, value in rows) + "\n"
    return RenderedEmail(heading, html, text)


def password_reset(p: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    reset_url = f"{frontend_url}/reset-password?token={p['token']}"
    minutes = p.get("ttl_minutes", 60)
    html = _layout(
        "<h2>Reset Your Password</h2>"
        "<p>We received a request to reset your password. Click the button below to choose a new one:</p>"
        + _button(reset_url, "Reset Password")
        + f"<p>This link will expire in {minutes} minutes. If you didn't request a reset, ignore this email.</p>"
    )
    text = f"Reset your password: {reset_url}\nThis link will expire in {minutes} minutes.\n"
    return RenderedEmail("Reset Your Password", html, text)


def contact_message(p: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    rows = [("Name", p["name"]), ("Email", p["email"]), ("Company", p.get("company") or "")]
    html = _layout(
        "<h2>New Contact Form Message</h2>"
        + _details(rows)
        + f'<p style="white-space: pre-wrap;">{escape(p["message"])}</p>'
    )
    text = "\n".join(f"{label}: {value}" for label, value in rows) + f"\n\n{p['message']}\n"
    return RenderedEmail(f"New Contact Form Message from {p['name']}", html, text)


RENDERERS = {
    "booking_confirmation_request": booking_confirmation_request,
    "booking_rescheduled": booking_rescheduled,
    "booking_cancelled": booking_cancelled,
    "admin_notification": admin_notification,
    "password_reset": password_reset,
    "contact_message": contact_message,
}


def render(kind: str, payload: Dict[str, Any], frontend_url: str) -> RenderedEmail:
    return RENDERERS[kind](payload, frontend_url.rstrip("/"))
