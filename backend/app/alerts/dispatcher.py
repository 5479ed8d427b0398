"""
dispatcher.py — Emergency alert fan-out.

Given a new emergency call, alert every registered contact of the caller
over SMS, WhatsApp and email, and report how many deliveries succeeded or
failed on each channel.

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  1. Validate        │  callerId present, transcript non-empty,
    │                     │  urgency ∈ {low, medium, high, critical}
    └─────────┬───────────┘  → ValidationError, nothing else happens
              │
              ▼
    ┌─────────────────────┐
    │  2. Load contacts   │  one read of the contacts store
    │                     │  → ContactsStoreError on failure
    └─────────┬───────────┘  → zero-filled result when there are none
              │
              ▼
    ┌─────────────────────┐
    │  3. Render          │  one text body (SMS + WhatsApp)
    │                     │  email subject/HTML per contact
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  4. Fan out         │  one task per (contact, channel):
    │                     │    SMS → phone, WhatsApp → phone,
    │                     │    Email → email (only if present)
    └─────────┬───────────┘  joined with gather(return_exceptions=True)
              │
              ▼
    ┌─────────────────────┐
    │  5. Tally           │  sent / failed per channel
    └─────────────────────┘

═══════════════════════════════════════════════════════════════════════════
FAILURE ISOLATION
═══════════════════════════════════════════════════════════════════════════

    • Every (contact, channel) pair is its own task; a failure, exception
      or timeout in one never cancels or skips a sibling.
    • Missing provider credentials fail each attempt on that channel, the
      other channels are unaffected.
    • Only steps 1 and 2 can fail the dispatch as a whole.
    • One attempt per pair, no retries; each is bounded by the provider
      timeout.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, List, Optional, Tuple

from backend.app.alerts.models import (
    AlertChannel,
    CallDetails,
    Contact,
    DeliveryAttempt,
    DeliveryStatus,
    DispatchResult,
    Urgency,
)
from backend.app.alerts.channels import email_alert, sms_gateway, whatsapp_gateway
from backend.app.alerts.channels.providers import ChannelProviders
from backend.app.alerts.contacts_store import ContactsStore
from backend.app.alerts.templates import render_text_alert
from backend.app.core.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def validate_dispatch_request(caller_id: Any, call_details: Optional[CallDetails]) -> Urgency:
    """
    Check the dispatch input and return the parsed urgency.

    Raises
    ------
    ValidationError
        Missing caller id, missing call details, empty transcript or an
        urgency outside low / medium / high / critical.
    """
    if not isinstance(caller_id, str) or not caller_id.strip():
        raise ValidationError("callerId is required", field="callerId")
    if call_details is None:
        raise ValidationError("callDetails is required", field="callDetails")
    if not isinstance(call_details.transcript, str) or not call_details.transcript.strip():
        raise ValidationError("transcript must not be empty", field="callDetails.transcript")

    urgency = call_details.urgency_level
    if urgency is None:
        raise ValidationError(
            f"Invalid urgency '{call_details.urgency}'",
            field="callDetails.urgency",
            allowed=[u.value for u in Urgency],
        )
    return urgency


class AlertDispatcher:
    """
    Fans an emergency call out to the caller's contacts.

    Parameters
    ----------
    contacts_store : ContactsStore
        Read-only source of the caller's contacts.
    providers : ChannelProviders
        SMS, WhatsApp and email providers; any may be unconfigured.
    timeout_seconds : float
        Bound on each (contact, channel) attempt.
    """

    def __init__(
        self,
        contacts_store: ContactsStore,
        providers: ChannelProviders,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.contacts_store = contacts_store
        self.providers = providers
        self.timeout_seconds = timeout_seconds

    def _plan(
        self,
        contacts: List[Contact],
        details: CallDetails,
        text_body: str,
    ) -> List[Tuple[AlertChannel, Contact, Awaitable[DeliveryAttempt]]]:
        """One pending attempt per eligible (contact, channel) pair."""
        timeout = self.timeout_seconds
        plan: List[Tuple[AlertChannel, Contact, Awaitable[DeliveryAttempt]]] = []
        for contact in contacts:
            plan.append((
                AlertChannel.SMS, contact,
                sms_gateway.send(contact, text_body, provider=self.providers.sms, timeout_seconds=timeout),
            ))
            plan.append((
                AlertChannel.WHATSAPP, contact,
                whatsapp_gateway.send(contact, text_body, provider=self.providers.whatsapp, timeout_seconds=timeout),
            ))
            if contact.email:
                plan.append((
                    AlertChannel.EMAIL, contact,
                    email_alert.send(contact, details, provider=self.providers.email, timeout_seconds=timeout),
                ))
        return plan

    async def dispatch(self, caller_id: str, call_details: CallDetails) -> DispatchResult:
        """
        Alert every contact of `caller_id` about `call_details`.

        Returns
        -------
        DispatchResult
            Per-channel sent/failed tallies. Partial failure is normal.

        Raises
        ------
        ValidationError
            Malformed input; no store or provider access happened.
        ContactsStoreError
            Contacts could not be read; no channel was attempted.
        """
        validate_dispatch_request(caller_id, call_details)
        caller_id = caller_id.strip()

        contacts = await self.contacts_store.list_contacts(caller_id)
        result = DispatchResult(caller_id=caller_id, contact_count=len(contacts))

        if not contacts:
            logger.info(
                "No emergency contacts for caller %s — nothing to send",
                caller_id, extra={"caller_id": caller_id, "contact_count": 0},
            )
            result.completed_at = datetime.now(timezone.utc)
            return result

        logger.info(
            "Dispatching %s alert for caller %s to %d contact(s)",
            call_details.urgency_level.value, caller_id, len(contacts),
            extra={"caller_id": caller_id, "contact_count": len(contacts),
                   "dispatch_id": result.dispatch_id},
        )

        text_body = render_text_alert(call_details)
        plan = self._plan(contacts, call_details, text_body)
        outcomes = await asyncio.gather(
            *(pending for _, _, pending in plan),
            return_exceptions=True,
        )

        for (channel, contact, _), outcome in zip(plan, outcomes):
            if isinstance(outcome, BaseException):
                # Channels report failures as attempts; anything raised here is unexpected.
                logger.error(
                    "Unexpected %s error for contact %s: %r",
                    channel.value, contact.id, outcome,
                    extra={"channel": channel.value, "contact_id": contact.id},
                )
                outcome = DeliveryAttempt(
                    channel=channel,
                    contact_id=contact.id,
                    status=DeliveryStatus.FAILED,
                    completed_at=datetime.now(timezone.utc),
                    error_message=f"{type(outcome).__name__}: {outcome}",
                )
            result.record(outcome)

        result.completed_at = datetime.now(timezone.utc)
        logger.info(
            "Alert results for caller %s: %s",
            caller_id, result.to_dict(),
            extra={"caller_id": caller_id, "dispatch_id": result.dispatch_id},
        )
        return result
