"""
sms_gateway.py — SMS delivery channel.

Delivery mechanism:
    App  →  HTTP POST  →  Twilio Messages API  →  Carrier  →  Handset

The dispatcher renders one plain-text alert per dispatch and hands the
same body to every contact. The phone number is passed through untouched;
malformed numbers come back as provider rejections and are counted as
failures like any other. Long bodies are split into segments by Twilio.
"""

from __future__ import annotations

from backend.app.alerts.models import AlertChannel, Contact, DeliveryAttempt
from backend.app.alerts.channels.delivery import run_attempt
from backend.app.alerts.channels.providers import MessagingProvider


async def send(
    contact: Contact,
    body: str,
    *,
    provider: MessagingProvider,
    timeout_seconds: float,
) -> DeliveryAttempt:
    """Send the text alert to `contact.phone` by SMS. Never raises."""
    return await run_attempt(
        AlertChannel.SMS,
        contact,
        provider,
        lambda: provider.send(contact.phone, body),
        timeout_seconds=timeout_seconds,
    )
