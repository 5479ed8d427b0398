"""
templates.py — Alert message rendering.

Two renderings are produced once per dispatch and shared across contacts:

    Text (SMS + WhatsApp):
        🚨 EMERGENCY ALERT 🚨

        Urgency: CRITICAL
        Location: Main St & 5th Ave
        Type: fire
        Time: 2026-10-17 14:05 UTC

        Details: <transcript, first 100 chars>...

    Email:
        Subject: 🚨 EMERGENCY ALERT - CRITICAL URGENCY
        HTML card with the urgency label coloured by severity and the
        transcript cut at 200 chars. The greeting is per contact, so the
        HTML body is rendered per recipient from the shared details.

Location and incident type lines are omitted when absent. Unknown urgency
values render with the lowest-severity colour.
"""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Optional

from backend.app.alerts.models import CallDetails, Urgency

TEXT_TRANSCRIPT_LIMIT = 100
EMAIL_TRANSCRIPT_LIMIT = 200
CONTINUATION = "..."

_URGENCY_COLOURS = {
    Urgency.CRITICAL: "#dc2626",  # red
    Urgency.HIGH:     "#ea580c",  # orange
}
_DEFAULT_COLOUR = "#eab308"       # amber: medium, low and anything unknown


def truncate(text: str, limit: int) -> str:
    """Cut `text` to `limit` characters, appending a continuation marker if cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + CONTINUATION


def urgency_label(details: CallDetails) -> str:
    level = details.urgency_level
    if level is not None:
        return level.value.upper()
    return str(details.urgency or "").upper()


def urgency_colour(details: CallDetails) -> str:
    return _URGENCY_COLOURS.get(details.urgency_level, _DEFAULT_COLOUR)


def format_timestamp(created_at: datetime) -> str:
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def render_text_alert(details: CallDetails) -> str:
    """Plain-text body shared by the SMS and WhatsApp channels."""
    lines = [
        "🚨 EMERGENCY ALERT 🚨",
        "",
        f"Urgency: {urgency_label(details)}",
    ]
    if details.location:
        lines.append(f"Location: {details.location}")
    if details.incident_type:
        lines.append(f"Type: {details.incident_type}")
    lines.append(f"Time: {format_timestamp(details.created_at)}")
    lines.append("")
    lines.append(f"Details: {truncate(details.transcript, TEXT_TRANSCRIPT_LIMIT)}")
    return "\n".join(lines)


def render_email_subject(details: CallDetails) -> str:
    return f"🚨 EMERGENCY ALERT - {urgency_label(details)} URGENCY"


def render_email_html(details: CallDetails, contact_name: Optional[str] = None) -> str:
    """Render the HTML email body, greeting `contact_name` when given."""
    colour = urgency_colour(details)
    greeting = f"<p>Dear {escape(contact_name)},</p>" if contact_name else ""
    location = (
        f"<p><strong>Location:</strong> {escape(details.location)}</p>"
        if details.location else ""
    )
    incident = (
        f"<p><strong>Incident Type:</strong> {escape(details.incident_type)}</p>"
        if details.incident_type else ""
    )
    transcript = escape(truncate(details.transcript, EMAIL_TRANSCRIPT_LIMIT))

    return f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">
      <div style="background-color:#dc2626;color:white;padding:20px;text-align:center;">
        <h1 style="margin:0;">🚨 EMERGENCY ALERT</h1>
      </div>
      <div style="padding:20px;background-color:#f3f4f6;">
        {greeting}
        <p>An emergency call has been reported. Please take immediate action.</p>
        <div style="background-color:white;padding:15px;border-radius:8px;margin:15px 0;">
          <p><strong>Urgency Level:</strong> <span style="color:{colour};">{escape(urgency_label(details))}</span></p>
          {location}
          {incident}
          <p><strong>Time:</strong> {format_timestamp(details.created_at)}</p>
          <p><strong>Details:</strong> {transcript}</p>
        </div>
        <p style="color:#dc2626;font-weight:bold;">Please respond immediately if this is a genuine emergency.</p>
      </div>
    </div>
    """
