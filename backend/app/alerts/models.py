"""
models.py — Shared data structures for the emergency alert dispatcher.

Defines:
    • Urgency         — call urgency levels
    • AlertChannel    — delivery channel enum
    • DeliveryStatus  — per-contact, per-channel delivery tracking
    • CallDetails     — the emergency call being alerted on
    • Contact         — one registered emergency contact of a caller
    • ProviderResult  — what a channel provider reported for one send
    • DeliveryAttempt — single send attempt record
    • ChannelTally    — sent/failed counters for one channel
    • DispatchResult  — aggregate outcome of one dispatch

═══════════════════════════════════════════════════════════════════════════
CHANNEL ELIGIBILITY
═══════════════════════════════════════════════════════════════════════════

    Channel     Target            Attempted when
    ────────    ──────────────    ──────────────────────────────────
    SMS         contact.phone     always (phone is never validated)
    WhatsApp    contact.phone     always
    Email       contact.email     only when contact.email is not null

For every channel:  sent + failed == number of eligible contacts.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class Urgency(str, Enum):
    """Urgency attached to an emergency call, lowest first."""
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Any) -> Optional["Urgency"]:
        """Return the matching Urgency (case-insensitive) or None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class AlertChannel(str, Enum):
    """Delivery channels, in dispatch order."""
    SMS      = "sms"
    WHATSAPP = "whatsapp"
    EMAIL    = "email"


class DeliveryStatus(str, Enum):
    """Delivery state machine per contact per channel."""
    PENDING   = "pending"     # queued, not yet sent
    SENDING   = "sending"     # send in progress
    DELIVERED = "delivered"   # provider accepted the message
    FAILED    = "failed"      # provider error, timeout or unconfigured
    SKIPPED   = "skipped"     # contact not eligible for the channel


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _generate_dispatch_id() -> str:
    return f"DSP-{uuid.uuid4().hex[:12].upper()}"


@dataclass
class CallDetails:
    """
    The emergency call a dispatch is about.

    Attributes
    ----------
    transcript : str
        Free text reported by the caller. Must be non-empty to dispatch.
    urgency : str
        One of low / medium / high / critical. Kept as given; use
        `urgency_level` for the parsed value.
    location : str | None
        Free-text location, if the caller supplied one.
    incident_type : str | None
        Free-text incident category (e.g. "fire", "medical").
    created_at : datetime
        When the call record was created (timezone-aware).
    """
    transcript: str
    urgency: str
    location: Optional[str] = None
    incident_type: Optional[str] = None
    created_at: datetime = field(default_factory=_now)

    @property
    def urgency_level(self) -> Optional[Urgency]:
        return Urgency.parse(self.urgency)


@dataclass(frozen=True)
class Contact:
    """A registered emergency contact. Read-only snapshot from the store."""
    id: str
    name: str
    phone: str
    email: Optional[str] = None
    is_primary: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Contact":
        """Build a Contact from a contacts-table row (KeyError on missing id/name)."""
        return cls(
            id=str(row["id"]),
            name=row["name"],
            phone=row.get("phone") or "",
            email=row.get("email") or None,
            is_primary=bool(row.get("is_primary", False)),
        )


@dataclass
class ProviderResult:
    """Outcome reported by a channel provider for one message."""
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class DeliveryAttempt:
    """Record of a single delivery attempt to one contact via one channel."""
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    channel: AlertChannel = AlertChannel.SMS
    contact_id: str = ""
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempted_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None


@dataclass
class ChannelTally:
    """Sent/failed counters for one channel."""
    sent: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.sent + self.failed

    def record(self, attempt: DeliveryAttempt) -> None:
        if attempt.status == DeliveryStatus.DELIVERED:
            self.sent += 1
        elif attempt.status == DeliveryStatus.SKIPPED:
            return
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, int]:
        return {"sent": self.sent, "failed": self.failed}


@dataclass
class DispatchResult:
    """Aggregate outcome of one dispatch across all contacts and channels."""
    dispatch_id: str = field(default_factory=_generate_dispatch_id)
    caller_id: str = ""
    contact_count: int = 0
    sms: ChannelTally = field(default_factory=ChannelTally)
    whatsapp: ChannelTally = field(default_factory=ChannelTally)
    email: ChannelTally = field(default_factory=ChannelTally)
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    def tally_for(self, channel: AlertChannel) -> ChannelTally:
        return getattr(self, channel.value)

    def record(self, attempt: DeliveryAttempt) -> None:
        self.attempts.append(attempt)
        self.tally_for(attempt.channel).record(attempt)

    @property
    def total_sent(self) -> int:
        return self.sms.sent + self.whatsapp.sent + self.email.sent

    @property
    def total_failed(self) -> int:
        return self.sms.failed + self.whatsapp.failed + self.email.failed

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        """Per-channel tallies, the shape returned to the invoker."""
        return {
            channel.value: self.tally_for(channel).to_dict()
            for channel in AlertChannel
        }
