"""
Message templates for citizen and applicant notifications.
Email bodies are inline-styled HTML; SMS bodies are one short line.
"""

from dataclasses import dataclass
from datetime import date
from html import escape
from typing import Any, Dict, Optional

from huduma.models import NotificationChannel, NotificationEvent

BRAND_COLOR = "#006400"
ACCENT_COLOR = "#FFA500"


@dataclass
class RenderedMessage:
    subject: str
    body: str


def format_date(value: Any) -> str:
    """'Monday, 2 June 2025' from a date or ISO string"""
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return f"{value.strftime('%A')}, {value.day} {value.strftime('%B %Y')}"


def format_time(value: Optional[str]) -> str:
    return (value or "")[:5]


def _layout(heading: str, name: str, inner: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: {BRAND_COLOR}; color: white; padding: 20px; text-align: center;">
    <h1 style="margin: 0;">Huduma Centre</h1>
    <p style="margin: 5px 0 0 0;">{heading}</p>
  </div>
  <div style="padding: 20px; background-color: #f9f9f9;">
    <h2 style="color: {BRAND_COLOR};">Hello {escape(name)},</h2>
    {inner}
  </div>
  <div style="background-color: {BRAND_COLOR}; color: white; padding: 15px; text-align: center; font-size: 12px;">
    <p style="margin: 0;">&copy; Republic of Kenya - Huduma Centre</p>
  </div>
</div>
"""


def _details(title: str, border: str, rows: Dict[str, Optional[str]]) -> str:
    lines = "".join(
        f"<p><strong>{label}:</strong> {escape(str(value))}</p>"
        for label, value in rows.items()
        if value
    )
    return (
        f'<div style="background-color: white; padding: 15px; border-radius: 8px; '
        f'border-left: 4px solid {border}; margin: 20px 0;">'
        f'<h3 style="margin-top: 0; color: {BRAND_COLOR};">{title}</h3>{lines}</div>'
    )


def _staff_notes(label: str, notes: Optional[str]) -> str:
    return f"<p><strong>{label}:</strong> {escape(notes)}</p>" if notes else ""


def _booked_email(ctx: Dict[str, Any]) -> RenderedMessage:
    inner = (
        "<p>We have received your appointment request. It is "
        '<strong style="color: #856404;">PENDING APPROVAL</strong>; you will get '
        "another message once staff confirm it.</p>"
        + _details(
            "Requested Appointment",
            BRAND_COLOR,
            {
                "Centre": ctx.get("centre_name"),
                "Location": ctx.get("centre_location"),
                "Service": ctx.get("service_label"),
                "Date": format_date(ctx["date"]),
                "Time": format_time(ctx["time"]),
            },
        )
    )
    return RenderedMessage(
        subject="Your Huduma Centre Appointment Request was Received",
        body=_layout("Appointment Request", ctx["name"], inner),
    )


def _approved_email(ctx: Dict[str, Any]) -> RenderedMessage:
    queue_number = ctx.get("queue_number")
    inner = (
        "<p>Great news! Your appointment has been "
        '<strong style="color: green;">APPROVED</strong>.</p>'
        + _details(
            "Appointment Details",
            BRAND_COLOR,
            {
                "Centre": ctx.get("centre_name"),
                "Location": ctx.get("centre_location"),
                "Date": format_date(ctx["date"]),
                "Time": format_time(ctx["time"]),
                "Queue Number": f"#{queue_number}" if queue_number else None,
            },
        )
        + '<div style="background-color: #fff3cd; padding: 15px; border-radius: 8px; margin: 20px 0;">'
        '<h4 style="margin-top: 0; color: #856404;">Important Reminders:</h4>'
        '<ul style="margin-bottom: 0;">'
        "<li>Please arrive 15 minutes before your appointment time</li>"
        "<li>Bring your original documents and ID</li>"
        "<li>Keep this email for reference</li>"
        "</ul></div>"
        + _staff_notes("Notes from staff", ctx.get("staff_notes"))
        + '<p style="color: #666;">If you cannot make it, please cancel your '
        "appointment through the Citizen Portal.</p>"
    )
    return RenderedMessage(
        subject="Your Huduma Centre Appointment is Confirmed!",
        body=_layout("Appointment Confirmation", ctx["name"], inner),
    )


def _rescheduled_email(ctx: Dict[str, Any]) -> RenderedMessage:
    inner = (
        "<p>Your appointment has been "
        f'<strong style="color: {ACCENT_COLOR};">RESCHEDULED</strong>.</p>'
        + _details(
            "New Appointment Details",
            ACCENT_COLOR,
            {
                "Centre": ctx.get("centre_name"),
                "Location": ctx.get("centre_location"),
                "New Date": format_date(ctx["new_date"]),
                "New Time": format_time(ctx["new_time"]),
            },
        )
        + '<div style="background-color: #f0f0f0; padding: 15px; border-radius: 8px; margin: 20px 0;">'
        '<h4 style="margin-top: 0; color: #666;">Original Appointment:</h4>'
        '<p style="margin-bottom: 0; color: #999; text-decoration: line-through;">'
        f"{format_date(ctx['original_date'])} at {format_time(ctx['original_time'])}"
        "</p></div>"
        + _staff_notes("Reason for rescheduling", ctx.get("staff_notes"))
        + '<p style="color: #666;">If this new time doesn\'t work for you, please '
        "contact us or book a new appointment.</p>"
    )
    return RenderedMessage(
        subject="Your Huduma Centre Appointment has been Rescheduled",
        body=_layout("Appointment Update", ctx["name"], inner),
    )


def _cancelled_email(ctx: Dict[str, Any]) -> RenderedMessage:
    inner = (
        "<p>Your appointment on "
        f"<strong>{format_date(ctx['date'])} at {format_time(ctx['time'])}</strong> "
        f"at {escape(ctx.get('centre_name') or 'the Huduma Centre')} has been "
        '<strong style="color: #b00020;">CANCELLED</strong>.</p>'
        '<p style="color: #666;">You can book a new appointment through the Citizen Portal.</p>'
    )
    return RenderedMessage(
        subject="Your Huduma Centre Appointment was Cancelled",
        body=_layout("Appointment Cancelled", ctx["name"], inner),
    )


def _id_ready_email(ctx: Dict[str, Any]) -> RenderedMessage:
    document_label = ctx.get("document_label", "National ID")
    inner = (
        f"<p>We are pleased to inform you that your {escape(document_label)} is now "
        "ready for collection at the Huduma Centre.</p>"
        + _details(
            "Collection Details",
            BRAND_COLOR,
            {
                "Application ID": ctx.get("application_id"),
                f"{document_label} Number": ctx["document_number"],
            },
        )
        + "<p><strong>What to bring when collecting your document:</strong></p>"
        "<ul>"
        "<li>This notification (printed or on your phone)</li>"
        "<li>Your application receipt</li>"
        "<li>Any government-issued identification for verification</li>"
        "</ul>"
        "<p>Please visit your nearest Huduma Centre during working hours "
        "(Monday to Friday, 8:00 AM - 5:00 PM).</p>"
        "<p>Thank you for your patience.</p>"
    )
    return RenderedMessage(
        subject=f"Your {document_label} is Ready for Collection",
        body=_layout("Document Ready", ctx["name"], inner),
    )


def _sms(event: NotificationEvent, ctx: Dict[str, Any]) -> str:
    if event == NotificationEvent.BOOKED:
        return (
            f"Huduma: request received for {ctx['date']} {format_time(ctx['time'])} "
            f"at {ctx.get('centre_name', 'Huduma Centre')}. Awaiting approval."
        )
    if event == NotificationEvent.APPROVED:
        queue = f" Queue #{ctx['queue_number']}." if ctx.get("queue_number") else ""
        return (
            f"Huduma: appointment confirmed for {ctx['date']} {format_time(ctx['time'])} "
            f"at {ctx.get('centre_name', 'Huduma Centre')}.{queue} Arrive 15 min early."
        )
    if event == NotificationEvent.RESCHEDULED:
        return (
            f"Huduma: appointment moved from {ctx['original_date']} "
            f"{format_time(ctx['original_time'])} to {ctx['new_date']} "
            f"{format_time(ctx['new_time'])}."
        )
    if event == NotificationEvent.CANCELLED:
        return f"Huduma: appointment on {ctx['date']} {format_time(ctx['time'])} was cancelled."
    return (
        f"Your {ctx.get('document_label', 'National ID')} ({ctx['document_number']}) "
        "is ready for collection."
    )


_EMAIL_TEMPLATES = {
    NotificationEvent.BOOKED: _booked_email,
    NotificationEvent.APPROVED: _approved_email,
    NotificationEvent.RESCHEDULED: _rescheduled_email,
    NotificationEvent.CANCELLED: _cancelled_email,
    NotificationEvent.ID_READY: _id_ready_email,
}


def render(
    event: NotificationEvent, channel: NotificationChannel, context: Dict[str, Any]
) -> RenderedMessage:
    """
    Compose the message for an event on a channel.

    The mapping is deterministic: the same event, channel and context always
    produce the same subject and body.
    """
    event = NotificationEvent(event)
    if NotificationChannel(channel) == NotificationChannel.SMS:
        rendered = _EMAIL_TEMPLATES[event](context)
        return RenderedMessage(subject=rendered.subject, body=_sms(event, context))
    return _EMAIL_TEMPLATES[event](context)
