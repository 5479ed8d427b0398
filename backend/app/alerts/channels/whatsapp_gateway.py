"""
whatsapp_gateway.py — WhatsApp delivery channel.

Same provider family as SMS (Twilio), different transport: both the
recipient and the sender are addressed as "whatsapp:<E.164 number>". The
provider applies that prefix; this module only routes the shared text
alert to the contact's phone.

WhatsApp is attempted independently of the SMS outcome for the same
contact.
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
    """Send the text alert to `contact.phone` over WhatsApp. Never raises."""
    return await run_attempt(
        AlertChannel.WHATSAPP,
        contact,
        provider,
        lambda: provider.send(contact.phone, body),
        timeout_seconds=timeout_seconds,
    )
