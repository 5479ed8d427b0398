"""
test_dispatcher.py — Tests for the emergency alert fan-out.

Covers:
    • Data models (Urgency parsing, Contact rows, tallies, result shape)
    • Channel delivery (configured / unconfigured / rejected / raising / slow)
    • Dispatch orchestration (validation, contacts lookup, fan-out, tallies)
    • Failure isolation between contacts and between channels
    • Message rendering as seen by the providers

Run with:
    pytest tests/test_dispatcher.py -v
"""

from __future__ import annotations

import asyncio
import pytest
from datetime import datetime, timezone
from typing import List, Optional

from backend.app.alerts.models import (
    AlertChannel,
    CallDetails,
    ChannelTally,
    Contact,
    DeliveryAttempt,
    DeliveryStatus,
    DispatchResult,
    ProviderResult,
    Urgency,
)
from backend.app.alerts.channels import email_alert, sms_gateway, whatsapp_gateway
from backend.app.alerts.channels.providers import (
    ChannelProviders,
    EmailProvider,
    MessagingProvider,
)
from backend.app.alerts.contacts_store import ContactsStore, InMemoryContactsStore
from backend.app.alerts.dispatcher import AlertDispatcher, validate_dispatch_request
from backend.app.core.errors import ContactsStoreError, ValidationError


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

class FakeMessaging(MessagingProvider):
    """Records sends; behaviour per phone number is configurable."""

    def __init__(
        self,
        name: str = "fake-sms",
        *,
        configured: bool = True,
        reject: tuple = (),
        explode: tuple = (),
        hang: tuple = (),
    ):
        self.name = name
        self._configured = configured
        self.reject = reject
        self.explode = explode
        self.hang = hang
        self.sent: List[tuple] = []

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def send(self, to_phone: str, body: str) -> ProviderResult:
        self.sent.append((to_phone, body))
        if to_phone in self.explode:
            raise RuntimeError("provider exploded")
        if to_phone in self.hang:
            await asyncio.sleep(10)
        if to_phone in self.reject:
            return ProviderResult(ok=False, error="invalid 'To' number", status_code=400)
        return ProviderResult(ok=True, message_id=f"SM{len(self.sent)}", status_code=201)


class FakeEmail(EmailProvider):
    def __init__(self, *, configured: bool = True, reject: tuple = ()):
        self.name = "fake-email"
        self._configured = configured
        self.reject = reject
        self.sent: List[tuple] = []

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def send(self, to_address: str, subject: str, html: str) -> ProviderResult:
        self.sent.append((to_address, subject, html))
        if to_address in self.reject:
            return ProviderResult(ok=False, error="domain not verified", status_code=403)
        return ProviderResult(ok=True, message_id="em_1", status_code=200)


class RecordingStore(ContactsStore):
    """Store that counts lookups and can be told to fail."""

    def __init__(self, contacts: Optional[List[Contact]] = None, fail: bool = False):
        self.contacts = contacts or []
        self.fail = fail
        self.calls: List[str] = []

    async def list_contacts(self, caller_id: str) -> List[Contact]:
        self.calls.append(caller_id)
        if self.fail:
            raise ContactsStoreError("HTTP 503", caller_id=caller_id)
        return list(self.contacts)


def _make_contact(
    cid: str = "c1",
    name: str = "Asha",
    phone: str = "+15550000001",
    email: Optional[str] = "asha@example.com",
    is_primary: bool = False,
) -> Contact:
    """Create a test contact."""
    return Contact(id=cid, name=name, phone=phone, email=email, is_primary=is_primary)


def _make_call(
    transcript: str = "Smoke on the second floor, two people inside.",
    urgency: str = "high",
    location: Optional[str] = "12 Elm Street",
    incident_type: Optional[str] = "fire",
) -> CallDetails:
    """Create a test call."""
    return CallDetails(
        transcript=transcript,
        urgency=urgency,
        location=location,
        incident_type=incident_type,
        created_at=datetime(2026, 10, 17, 14, 5, tzinfo=timezone.utc),
    )


def _make_providers(
    sms: Optional[FakeMessaging] = None,
    whatsapp: Optional[FakeMessaging] = None,
    email: Optional[FakeEmail] = None,
) -> ChannelProviders:
    return ChannelProviders(
        sms=sms or FakeMessaging("fake-sms"),
        whatsapp=whatsapp or FakeMessaging("fake-whatsapp"),
        email=email or FakeEmail(),
    )


def _dispatch(dispatcher: AlertDispatcher, caller_id="u1", call=None) -> DispatchResult:
    return asyncio.run(dispatcher.dispatch(caller_id, call or _make_call()))


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Data Model Tests
# ═══════════════════════════════════════════════════════════════════════════

class TestUrgency:

    def test_values(self):
        assert [u.value for u in Urgency] == ["low", "medium", "high", "critical"]

    def test_parse_is_case_insensitive(self):
        assert Urgency.parse("CRITICAL") == Urgency.CRITICAL
        assert Urgency.parse(" High ") == Urgency.HIGH

    def test_parse_unknown_returns_none(self):
        assert Urgency.parse("urgent") is None
        assert Urgency.parse(None) is None
        assert Urgency.parse(3) is None


class TestContact:

    def test_from_row(self):
        row = {"id": 7, "name": "Ben", "phone": "+1555", "email": None, "is_primary": True}
        contact = Contact.from_row(row)
        assert contact.id == "7"
        assert contact.email is None
        assert contact.is_primary is True

    def test_from_row_blank_email_is_none(self):
        contact = Contact.from_row({"id": "a", "name": "A", "phone": "+1", "email": ""})
        assert contact.email is None

    def test_from_row_missing_name_raises(self):
        with pytest.raises(KeyError):
            Contact.from_row({"id": "a", "phone": "+1"})


class TestChannelTally:

    def test_skipped_counts_toward_neither(self):
        tally = ChannelTally()
        tally.record(DeliveryAttempt(status=DeliveryStatus.SKIPPED))
        assert tally.attempted == 0

    def test_delivered_and_failed(self):
        tally = ChannelTally()
        tally.record(DeliveryAttempt(status=DeliveryStatus.DELIVERED))
        tally.record(DeliveryAttempt(status=DeliveryStatus.FAILED))
        assert tally.to_dict() == {"sent": 1, "failed": 1}


class TestDispatchResult:

    def test_default_id_generated(self):
        assert DispatchResult().dispatch_id.startswith("DSP-")

    def test_to_dict_has_every_channel(self):
        assert DispatchResult().to_dict() == {
            "sms": {"sent": 0, "failed": 0},
            "whatsapp": {"sent": 0, "failed": 0},
            "email": {"sent": 0, "failed": 0},
        }

    def test_record_routes_to_channel(self):
        result = DispatchResult()
        result.record(DeliveryAttempt(channel=AlertChannel.WHATSAPP, status=DeliveryStatus.DELIVERED))
        assert result.whatsapp.sent == 1
        assert result.sms.sent == 0
        assert result.total_sent == 1


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Channel Delivery Tests
# ═══════════════════════════════════════════════════════════════════════════

class TestSmsChannel:

    def test_delivered(self):
        provider = FakeMessaging()
        attempt = asyncio.run(sms_gateway.send(
            _make_contact(), "hello", provider=provider, timeout_seconds=1,
        ))
        assert attempt.status == DeliveryStatus.DELIVERED
        assert attempt.provider_response == {
            "provider": "fake-sms", "message_id": "SM1", "status_code": 201,
        }
        assert provider.sent == [("+15550000001", "hello")]

    def test_unconfigured_fails_without_sending(self):
        provider = FakeMessaging(configured=False)
        attempt = asyncio.run(sms_gateway.send(
            _make_contact(), "hello", provider=provider, timeout_seconds=1,
        ))
        assert attempt.status == DeliveryStatus.FAILED
        assert "not configured" in attempt.error_message
        assert provider.sent == []

    def test_rejected(self):
        provider = FakeMessaging(reject=("+15550000001",))
        attempt = asyncio.run(sms_gateway.send(
            _make_contact(), "hello", provider=provider, timeout_seconds=1,
        ))
        assert attempt.status == DeliveryStatus.FAILED
        assert attempt.error_message == "invalid 'To' number"

    def test_exception_becomes_failure(self):
        provider = FakeMessaging(explode=("+15550000001",))
        attempt = asyncio.run(sms_gateway.send(
            _make_contact(), "hello", provider=provider, timeout_seconds=1,
        ))
        assert attempt.status == DeliveryStatus.FAILED
        assert attempt.error_message.startswith("RuntimeError")

    def test_timeout_becomes_failure(self):
        provider = FakeMessaging(hang=("+15550000001",))
        attempt = asyncio.run(sms_gateway.send(
            _make_contact(), "hello", provider=provider, timeout_seconds=0.05,
        ))
        assert attempt.status == DeliveryStatus.FAILED
        assert "timed out" in attempt.error_message

    def test_long_body_passed_through_whole(self):
        provider = FakeMessaging()
        body = "🚨" + "a" * 400
        asyncio.run(sms_gateway.send(_make_contact(), body, provider=provider, timeout_seconds=1))
        assert provider.sent[0][1] == body


class TestWhatsAppChannel:

    def test_delivered(self):
        provider = FakeMessaging("fake-whatsapp")
        attempt = asyncio.run(whatsapp_gateway.send(
            _make_contact(), "hello", provider=provider, timeout_seconds=1,
        ))
        assert attempt.channel == AlertChannel.WHATSAPP
        assert attempt.status == DeliveryStatus.DELIVERED


class TestEmailChannel:

    def test_skips_without_email(self):
        provider = FakeEmail()
        attempt = asyncio.run(email_alert.send(
            _make_contact(email=None), _make_call(), provider=provider, timeout_seconds=1,
        ))
        assert attempt.status == DeliveryStatus.SKIPPED
        assert provider.sent == []

    def test_sends_rendered_email(self):
        provider = FakeEmail()
        attempt = asyncio.run(email_alert.send(
            _make_contact(), _make_call(urgency="critical"), provider=provider, timeout_seconds=1,
        ))
        assert attempt.status == DeliveryStatus.DELIVERED
        to, subject, html = provider.sent[0]
        assert to == "asha@example.com"
        assert subject == "🚨 EMERGENCY ALERT - CRITICAL URGENCY"
        assert "Dear Asha" in html
        assert "#dc2626" in html


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Validation Tests
# ═══════════════════════════════════════════════════════════════════════════

class TestValidation:

    def test_returns_parsed_urgency(self):
        assert validate_dispatch_request("u1", _make_call(urgency="Medium")) == Urgency.MEDIUM

    @pytest.mark.parametrize("caller_id", [None, "", "   ", 42])
    def test_caller_id_required(self, caller_id):
        with pytest.raises(ValidationError) as exc:
            validate_dispatch_request(caller_id, _make_call())
        assert exc.value.details["field"] == "callerId"

    def test_call_details_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_dispatch_request("u1", None)
        assert exc.value.details["field"] == "callDetails"

    def test_empty_transcript(self):
        with pytest.raises(ValidationError) as exc:
            validate_dispatch_request("u1", _make_call(transcript="  "))
        assert exc.value.details["field"] == "callDetails.transcript"

    def test_unknown_urgency(self):
        with pytest.raises(ValidationError) as exc:
            validate_dispatch_request("u1", _make_call(urgency="urgent"))
        assert exc.value.status_code == 422
        assert exc.value.details["allowed"] == ["low", "medium", "high", "critical"]


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Dispatch Orchestration Tests
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatch:

    def test_two_contacts_one_without_email(self):
        store = InMemoryContactsStore({
            "u1": [
                _make_contact("c1", email="asha@example.com"),
                _make_contact("c2", name="Ben", phone="+15550000002", email=None),
            ],
        })
        dispatcher = AlertDispatcher(store, _make_providers())
        result = _dispatch(dispatcher)
        assert result.to_dict() == {
            "sms": {"sent": 2, "failed": 0},
            "whatsapp": {"sent": 2, "failed": 0},
            "email": {"sent": 1, "failed": 0},
        }
        assert result.contact_count == 2
        assert result.completed_at is not None

    def test_caller_id_whitespace_trimmed_before_lookup(self):
        store = RecordingStore([_make_contact()])
        dispatcher = AlertDispatcher(store, _make_providers())
        result = _dispatch(dispatcher, caller_id="  u1 ")
        assert store.calls == ["u1"]
        assert result.caller_id == "u1"
        assert result.sms.sent == 1

    def test_no_contacts_sends_nothing(self):
        providers = _make_providers()
        dispatcher = AlertDispatcher(InMemoryContactsStore(), providers)
        result = _dispatch(dispatcher, caller_id="nobody")
        assert result.contact_count == 0
        assert result.total_sent == 0 and result.total_failed == 0
        assert providers.sms.sent == []
        assert providers.email.sent == []

    def test_invalid_input_touches_nothing(self):
        store = RecordingStore([_make_contact()])
        providers = _make_providers()
        dispatcher = AlertDispatcher(store, providers)
        with pytest.raises(ValidationError):
            _dispatch(dispatcher, call=_make_call(urgency="extreme"))
        assert store.calls == []
        assert providers.sms.sent == []

    def test_store_failure_aborts_before_channels(self):
        providers = _make_providers()
        dispatcher = AlertDispatcher(RecordingStore(fail=True), providers)
        with pytest.raises(ContactsStoreError) as exc:
            _dispatch(dispatcher)
        assert exc.value.status_code == 502
        assert providers.sms.sent == []
        assert providers.whatsapp.sent == []

    def test_tallies_cover_every_eligible_contact(self):
        contacts = [
            _make_contact(f"c{i}", phone=f"+1555000000{i}", email=None if i % 2 else f"c{i}@example.com")
            for i in range(5)
        ]
        sms = FakeMessaging(reject=("+15550000001", "+15550000003"))
        email = FakeEmail(reject=("c0@example.com",))
        dispatcher = AlertDispatcher(RecordingStore(contacts), _make_providers(sms=sms, email=email))
        result = _dispatch(dispatcher)
        assert result.sms.attempted == 5
        assert result.whatsapp.attempted == 5
        assert result.email.attempted == 3
        assert result.sms.failed == 2
        assert result.email.failed == 1

    def test_unconfigured_sms_fails_only_sms(self):
        contacts = [_make_contact("c1"), _make_contact("c2", phone="+15550000002")]
        sms = FakeMessaging(configured=False)
        dispatcher = AlertDispatcher(RecordingStore(contacts), _make_providers(sms=sms))
        result = _dispatch(dispatcher)
        assert result.sms.to_dict() == {"sent": 0, "failed": 2}
        assert result.whatsapp.to_dict() == {"sent": 2, "failed": 0}
        assert result.email.to_dict() == {"sent": 2, "failed": 0}
        assert sms.sent == []

    def test_raising_contact_does_not_block_next(self):
        a = _make_contact("a", phone="+15550000001")
        b = _make_contact("b", phone="+15550000002")
        sms = FakeMessaging(explode=("+15550000001",))
        dispatcher = AlertDispatcher(RecordingStore([a, b]), _make_providers(sms=sms))
        result = _dispatch(dispatcher)
        assert result.sms.to_dict() == {"sent": 1, "failed": 1}
        assert result.whatsapp.sent == 2
        failed = [x for x in result.attempts if x.status == DeliveryStatus.FAILED]
        assert [x.contact_id for x in failed] == ["a"]

    def test_slow_provider_times_out_alone(self):
        contacts = [_make_contact("a", phone="+15550000001"), _make_contact("b", phone="+15550000002")]
        whatsapp = FakeMessaging("fake-whatsapp", hang=("+15550000001",))
        dispatcher = AlertDispatcher(
            RecordingStore(contacts), _make_providers(whatsapp=whatsapp), timeout_seconds=0.05,
        )
        result = _dispatch(dispatcher)
        assert result.whatsapp.to_dict() == {"sent": 1, "failed": 1}
        assert result.sms.sent == 2

    def test_unexpected_channel_error_is_counted(self, monkeypatch):
        async def broken_send(*args, **kwargs):
            raise RuntimeError("renderer crashed")

        monkeypatch.setattr(email_alert, "send", broken_send)
        dispatcher = AlertDispatcher(RecordingStore([_make_contact()]), _make_providers())
        result = _dispatch(dispatcher)
        assert result.email.to_dict() == {"sent": 0, "failed": 1}
        assert result.sms.sent == 1

    def test_every_attempt_recorded(self):
        contacts = [_make_contact("c1"), _make_contact("c2", email=None)]
        dispatcher = AlertDispatcher(RecordingStore(contacts), _make_providers())
        result = _dispatch(dispatcher)
        assert len(result.attempts) == 5
        assert {a.channel for a in result.attempts} == set(AlertChannel)


# ═══════════════════════════════════════════════════════════════════════════
# Section 5: Rendered Content Tests
# ═══════════════════════════════════════════════════════════════════════════

class TestRenderedContent:

    def test_long_transcript_is_cut_per_channel(self):
        transcript = "x" * 300
        sms = FakeMessaging()
        email = FakeEmail()
        dispatcher = AlertDispatcher(
            RecordingStore([_make_contact()]), _make_providers(sms=sms, email=email),
        )
        _dispatch(dispatcher, call=_make_call(transcript=transcript, urgency="critical"))

        _, body = sms.sent[0]
        assert "Details: " + "x" * 100 + "..." in body
        assert "x" * 101 not in body

        _, subject, html = email.sent[0]
        assert "CRITICAL" in subject
        assert "x" * 200 + "..." in html
        assert "x" * 201 not in html

    def test_same_text_for_sms_and_whatsapp(self):
        sms = FakeMessaging()
        whatsapp = FakeMessaging("fake-whatsapp")
        dispatcher = AlertDispatcher(
            RecordingStore([_make_contact()]), _make_providers(sms=sms, whatsapp=whatsapp),
        )
        _dispatch(dispatcher)
        assert sms.sent[0][1] == whatsapp.sent[0][1]
        assert "Urgency: HIGH" in sms.sent[0][1]
        assert "Location: 12 Elm Street" in sms.sent[0][1]

    def test_email_greets_each_contact(self):
        email = FakeEmail()
        contacts = [
            _make_contact("c1", name="Asha", email="asha@example.com"),
            _make_contact("c2", name="Ben", phone="+15550000002", email="ben@example.com"),
        ]
        dispatcher = AlertDispatcher(RecordingStore(contacts), _make_providers(email=email))
        _dispatch(dispatcher)
        by_address = {to: html for to, _, html in email.sent}
        assert "Dear Asha" in by_address["asha@example.com"]
        assert "Dear Ben" in by_address["ben@example.com"]
