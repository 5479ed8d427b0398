"""
delivery.py — One guarded delivery attempt.

Every channel funnels its provider call through `run_attempt`, which
guarantees the per-(contact, channel) isolation the dispatcher relies on:

    unconfigured provider   → FAILED ("<provider> not configured")
    provider says not ok    → FAILED (provider error detail)
    exception of any kind   → FAILED (exception text)
    no answer in time       → FAILED ("timed out after Ns")
    provider says ok        → DELIVERED

Nothing raised by a provider escapes this function. Each failure is logged
once, at WARNING, with channel and contact id.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Union

from backend.app.alerts.models import (
    AlertChannel,
    Contact,
    DeliveryAttempt,
    DeliveryStatus,
    ProviderResult,
)
from backend.app.alerts.channels.providers import EmailProvider, MessagingProvider

logger = logging.getLogger(__name__)

Provider = Union[MessagingProvider, EmailProvider]


def _fail(attempt: DeliveryAttempt, contact: Contact, reason: str) -> DeliveryAttempt:
    attempt.status = DeliveryStatus.FAILED
    attempt.error_message = reason
    attempt.completed_at = datetime.now(timezone.utc)
    logger.warning(
        "[%s] delivery to contact %s failed: %s",
        attempt.channel.value.upper(), contact.id, reason,
        extra={"channel": attempt.channel.value, "contact_id": contact.id},
    )
    return attempt


async def run_attempt(
    channel: AlertChannel,
    contact: Contact,
    provider: Provider,
    send: Callable[[], Awaitable[ProviderResult]],
    *,
    timeout_seconds: float,
) -> DeliveryAttempt:
    """
    Run one provider call for one contact and record the outcome.

    Parameters
    ----------
    channel : AlertChannel
    contact : Contact
    provider : MessagingProvider | EmailProvider
        Checked for `is_configured` before `send` is called.
    send : callable
        Zero-argument coroutine factory performing the provider call.
    timeout_seconds : float
        Upper bound on the provider call.

    Returns
    -------
    DeliveryAttempt
    """
    attempt = DeliveryAttempt(
        channel=channel,
        contact_id=contact.id,
        status=DeliveryStatus.SENDING,
    )

    if not provider.is_configured:
        return _fail(attempt, contact, f"{provider.name} not configured")

    try:
        result = await asyncio.wait_for(send(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return _fail(attempt, contact, f"timed out after {timeout_seconds:g}s")
    except Exception as exc:
        return _fail(attempt, contact, f"{type(exc).__name__}: {exc}")

    attempt.provider_response = {
        "provider": provider.name,
        "message_id": result.message_id,
        "status_code": result.status_code,
    }
    if not result.ok:
        return _fail(attempt, contact, result.error or "rejected by provider")

    attempt.status = DeliveryStatus.DELIVERED
    attempt.completed_at = datetime.now(timezone.utc)
    return attempt
