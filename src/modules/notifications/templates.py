"""Per-event copy for in-app, email and SMS notifications."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from html import escape
from typing import Any

from src.modules.notifications.models import MESSAGE_MAX_LENGTH, TITLE_MAX_LENGTH
from src.shared.enums import NotificationType

SMS_MAX_LENGTH = 160
ELLIPSIS = "..."
SHOP_NAME = "Vehicle Service Center"


@dataclass(frozen=True)
class RenderedNotification:
    title: str
    message: str
    email_subject: str
    email_html: str
    sms_text: str


def truncate_sms(text: str, limit: int = SMS_MAX_LENGTH) -> str:
    """Fit ``text`` into one SMS segment, ending with ``...`` when cut."""
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def _email_layout(heading: str, greeting: str, intro: str, details: list[tuple[str, str]], footer: str) -> str:
    rows = "".join(
        f'<tr><td style="color:#6b7280;padding:4px 12px 4px 0;">{escape(label)}</td>'
        f'<td style="color:#111827;font-weight:500;">{escape(str(value))}</td></tr>'
        for label, value in details
        if value
    )
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"></head>
<body style="margin:0;padding:24px;background:#f3f4f6;font-family:Arial,Helvetica,sans-serif;">
  <table width="560" cellpadding="0" cellspacing="0" style="margin:0 auto;background:#ffffff;border-radius:8px;">
    <tr><td style="padding:24px 32px;background:#1d4ed8;color:#ffffff;border-radius:8px 8px 0 0;">
      <h1 style="margin:0;font-size:20px;">{escape(heading)}</h1>
    </td></tr>
    <tr><td style="padding:24px 32px;">
      <p>{escape(greeting)}</p>
      <p>{escape(intro)}</p>
      <table cellpadding="0" cellspacing="0">{rows}</table>
      <p style="color:#6b7280;font-size:13px;margin-top:24px;">{escape(footer)}</p>
    </td></tr>
    <tr><td style="padding:16px 32px;color:#9ca3af;font-size:12px;">{SHOP_NAME}</td></tr>
  </table>
</body>
</html>"""


def _appointment_details(p: Mapping[str, Any]) -> list[tuple[str, str]]:
    return [
        ("Reference", p.get("reference", "")),
        ("Date", p.get("date", "")),
        ("Time", p.get("time", "")),
        ("Vehicle", p.get("vehicle", "")),
        ("Technician", p.get("technician", "")),
    ]


def _render_created(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    if p.get("audience") == "admin":
        message = (
            f"New booking {p.get('reference')} from {p.get('customer', 'a customer')} "
            f"for {p.get('date')} at {p.get('time')}."
        )
        return RenderedNotification(
            title="New appointment booked",
            message=message,
            email_subject=f"New Appointment - {p.get('reference')}",
            email_html=_email_layout("New appointment", f"Hi {name},", message, _appointment_details(p), "Review it in the admin dashboard."),
            sms_text=message,
        )
    message = f"Your appointment {p.get('reference')} on {p.get('date')} at {p.get('time')} has been received."
    return RenderedNotification(
        title="Appointment received",
        message=message,
        email_subject=f"Appointment Confirmation - #{p.get('reference')}",
        email_html=_email_layout(
            "Appointment received",
            f"Hi {name},",
            "Thanks for booking with us. We will confirm your technician shortly.",
            _appointment_details(p),
            "Need to change something? You can reschedule from your dashboard.",
        ),
        sms_text=f"Hi {name}! Your appointment {p.get('reference')} is booked for {p.get('date')} at {p.get('time')}. Thank you!",
    )


def _render_confirmed(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = (
        f"Your appointment {p.get('reference')} on {p.get('date')} at {p.get('time')} is confirmed"
        + (f" with {p['technician']}." if p.get("technician") else ".")
    )
    return RenderedNotification(
        title="Appointment confirmed",
        message=message,
        email_subject=f"Appointment Confirmed - #{p.get('reference')}",
        email_html=_email_layout("Appointment confirmed", f"Hi {name},", "Your appointment is confirmed.", _appointment_details(p), "We'll see you soon!"),
        sms_text=(
            f"Hi {name}! Your appointment for {p.get('vehicle', 'your vehicle')} is confirmed for "
            f"{p.get('date')} at {p.get('time')}. Ref: {p.get('reference')}. Thank you!"
        ),
    )


def _render_assigned(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = (
        f"New assignment {p.get('reference')}: {p.get('vehicle', 'vehicle')} for "
        f"{p.get('customer', 'a customer')} on {p.get('date')} at {p.get('time')}."
    )
    return RenderedNotification(
        title="New appointment assigned",
        message=message,
        email_subject=f"New Assignment - #{p.get('reference')}",
        email_html=_email_layout("New assignment", f"Hi {name},", "You have been assigned a new appointment.", _appointment_details(p), "Check your dashboard for details."),
        sms_text=f"Hi {name}! New assignment: {p.get('vehicle', 'vehicle')} on {p.get('date')} at {p.get('time')}. Check your dashboard.",
    )


def _render_rescheduled(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = (
        f"Appointment {p.get('reference')} moved from {p.get('old_date')} {p.get('old_time')} "
        f"to {p.get('date')} {p.get('time')}."
    )
    return RenderedNotification(
        title="Appointment rescheduled",
        message=message,
        email_subject=f"Appointment Rescheduled - #{p.get('reference')}",
        email_html=_email_layout(
            "Appointment rescheduled",
            f"Hi {name},",
            f"Your appointment was moved from {p.get('old_date')} {p.get('old_time')}.",
            _appointment_details(p) + [("Reason", p.get("reason") or "")],
            "Contact us if the new time does not suit you.",
        ),
        sms_text=f"Hi {name}! Your appointment {p.get('reference')} is now on {p.get('date')} at {p.get('time')}.",
    )


def _render_cancelled(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    fee = p.get("cancellation_fee")
    fee_note = f" A cancellation fee of {fee} applies." if fee and str(fee) not in ("0", "0.00") else ""
    message = f"Appointment {p.get('reference')} on {p.get('date')} at {p.get('time')} has been cancelled.{fee_note}"
    return RenderedNotification(
        title="Appointment cancelled",
        message=message,
        email_subject=f"Appointment Cancelled - #{p.get('reference')}",
        email_html=_email_layout(
            "Appointment cancelled",
            f"Hi {name},",
            "Your appointment has been cancelled." + fee_note,
            _appointment_details(p) + [("Reason", p.get("reason") or "")],
            "Contact us to book a new time.",
        ),
        sms_text=f"Hi {name}! Your appointment for {p.get('vehicle', 'your vehicle')} has been cancelled. Contact us for rescheduling.",
    )


def _render_appointment_completed(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = f"Appointment {p.get('reference')} is complete."
    return RenderedNotification(
        title="Appointment completed",
        message=message,
        email_subject=f"Appointment Completed - #{p.get('reference')}",
        email_html=_email_layout("Appointment completed", f"Hi {name},", message, _appointment_details(p), "Thank you for choosing us!"),
        sms_text=f"Hi {name}! Your appointment {p.get('reference')} is complete. Thank you for choosing us!",
    )


def _render_reminder(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = f"Reminder: your appointment {p.get('reference')} is on {p.get('date')} at {p.get('time')}."
    return RenderedNotification(
        title="Appointment reminder",
        message=message,
        email_subject=f"Appointment Reminder - {p.get('date')} at {p.get('time')}",
        email_html=_email_layout("Appointment reminder", f"Hi {name},", message, _appointment_details(p), "Contact us if you need to reschedule."),
        sms_text=f"Reminder: Your appointment is on {p.get('date')} at {p.get('time')}. Contact us if you need to reschedule. Thank you!",
    )


def _render_service_started(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = f"Work on your {p.get('vehicle', 'vehicle')} has started."
    return RenderedNotification(
        title="Service started",
        message=message,
        email_subject="Your Vehicle Service Has Started",
        email_html=_email_layout("Service started", f"Hi {name},", message, _appointment_details(p), "We'll notify you when it's ready."),
        sms_text=f"Hi {name}! Your {p.get('vehicle', 'vehicle')} service is now in progress. We'll notify you when it's ready.",
    )


def _render_service_completed(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = f"Service on your {p.get('vehicle', 'vehicle')} is complete."
    return RenderedNotification(
        title="Service completed",
        message=message,
        email_subject="Your Vehicle Service is Complete!",
        email_html=_email_layout("Service completed", f"Hi {name},", message, _appointment_details(p) + [("Notes", p.get("notes") or "")], "Thank you for choosing us!"),
        sms_text=f"Hi {name}! Your {p.get('vehicle', 'vehicle')} service is complete. Thank you for choosing us!",
    )


def _render_vehicle_ready(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    message = f"Your {p.get('vehicle', 'vehicle')} is ready for pickup."
    return RenderedNotification(
        title="Vehicle ready for pickup",
        message=message,
        email_subject="Your Vehicle is Ready for Pickup!",
        email_html=_email_layout("Ready for pickup", f"Hi {name},", message, _appointment_details(p), "Please bring your booking reference."),
        sms_text=f"Hi {name}! Your {p.get('vehicle', 'vehicle')} is ready. You can pick up your vehicle now.",
    )


def _render_system(name: str, p: Mapping[str, Any]) -> RenderedNotification:
    title = p.get("title", "Notification")
    message = p.get("message", "")
    return RenderedNotification(
        title=title,
        message=message,
        email_subject=title,
        email_html=_email_layout(title, f"Hi {name},", message, [], ""),
        sms_text=message,
    )


_RENDERERS: dict[NotificationType, Callable[[str, Mapping[str, Any]], RenderedNotification]] = {
    NotificationType.APPOINTMENT_CREATED: _render_created,
    NotificationType.APPOINTMENT_CONFIRMED: _render_confirmed,
    NotificationType.APPOINTMENT_ASSIGNED: _render_assigned,
    NotificationType.APPOINTMENT_RESCHEDULED: _render_rescheduled,
    NotificationType.APPOINTMENT_CANCELLED: _render_cancelled,
    NotificationType.APPOINTMENT_COMPLETED: _render_appointment_completed,
    NotificationType.APPOINTMENT_REMINDER: _render_reminder,
    NotificationType.SERVICE_STARTED: _render_service_started,
    NotificationType.SERVICE_COMPLETED: _render_service_completed,
    NotificationType.VEHICLE_READY: _render_vehicle_ready,
    NotificationType.SYSTEM_NOTIFICATION: _render_system,
}


def render(event_type: NotificationType, recipient_name: str, payload: Mapping[str, Any]) -> RenderedNotification:
    rendered = _RENDERERS[NotificationType(event_type)](recipient_name, payload)
    return RenderedNotification(
        title=truncate_sms(rendered.title, TITLE_MAX_LENGTH),
        message=truncate_sms(rendered.message, MESSAGE_MAX_LENGTH),
        email_subject=rendered.email_subject,
        email_html=rendered.email_html,
        sms_text=truncate_sms(rendered.sms_text),
    )
