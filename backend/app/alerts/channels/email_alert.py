"""
email_alert.py — Email alert delivery channel.

Delivery mechanism:
    • Resend transactional email API
    • HTML body with the urgency coloured by severity
    • Transcript cut at 200 characters (longer than the text channels)

Email is the only optional channel: contacts without an address are
SKIPPED and count toward neither tally.

    Subject: 🚨 EMERGENCY ALERT - {URGENCY} URGENCY
    Body:
        ┌─────────────────────────────────────────┐
        │  🚨 EMERGENCY ALERT                      │
        ├─────────────────────────────────────────┤
        │  Dear {contact name},                    │
        │  Urgency Level: {URGENCY}  (coloured)    │
        │  Location / Incident Type (if known)     │
        │  Time / Details                          │
        └─────────────────────────────────────────┘
"""

from __future__ import annotations

from datetime import datetime, timezone

from backend.app.alerts.models import (
    AlertChannel,
    CallDetails,
    Contact,
    DeliveryAttempt,
    DeliveryStatus,
)
from backend.app.alerts.channels.delivery import run_attempt
from backend.app.alerts.channels.providers import EmailProvider
from backend.app.alerts.templates import render_email_html, render_email_subject


async def send(
    contact: Contact,
    details: CallDetails,
    *,
    provider: EmailProvider,
    timeout_seconds: float,
) -> DeliveryAttempt:
    """Send the HTML alert to `contact.email`. Never raises."""
    if not contact.email:
        return DeliveryAttempt(
            channel=AlertChannel.EMAIL,
            contact_id=contact.id,
            status=DeliveryStatus.SKIPPED,
            completed_at=datetime.now(timezone.utc),
            error_message="No email address on file",
        )

    subject = render_email_subject(details)
    html = render_email_html(details, contact.name)
    address = contact.email

    return await run_attempt(
        AlertChannel.EMAIL,
        contact,
        provider,
        lambda: provider.send(address, subject, html),
        timeout_seconds=timeout_seconds,
    )
