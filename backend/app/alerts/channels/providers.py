"""
providers.py — HTTP clients for the external channel providers.

    Twilio Messages API   — SMS and WhatsApp (same account, the WhatsApp
                            transport prefixes both numbers with "whatsapp:")
    Resend Emails API     — HTML email

Every provider exposes:
    name           — short provider id used in logs and health output
    is_configured  — capability check; False when credentials are missing
    send(...)      — async, returns ProviderResult for any HTTP response

Transport errors (connect failures, timeouts) propagate as httpx
exceptions; the channel layer turns them into failed DeliveryAttempts.
A provider is never asked to send while unconfigured.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from backend.app.alerts.models import ProviderResult
from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def _json_field(response: httpx.Response, key: str) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get(key) if isinstance(data, dict) else None


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data)
    return str(data)


class _HttpProvider:
    """Shared lazy httpx.AsyncClient handling."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()


class MessagingProvider(ABC):
    """Phone-number based provider (SMS, WhatsApp)."""

    name: str = "messaging"

    @property
    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def send(self, to_phone: str, body: str) -> ProviderResult: ...


class EmailProvider(ABC):
    """Address based provider."""

    name: str = "email"

    @property
    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def send(self, to_address: str, subject: str, html: str) -> ProviderResult: ...


# ═══════════════════════════════════════════════════════════════════════════
# Twilio (SMS + WhatsApp)
# ═══════════════════════════════════════════════════════════════════════════

class TwilioMessagingClient(_HttpProvider, MessagingProvider):
    """
    Twilio Programmable Messaging.

    POST {base_url}/Accounts/{sid}/Messages.json
        form: To, From, Body
        auth: HTTP basic (account_sid, auth_token)

    `transport_prefix` is "" for SMS and "whatsapp:" for WhatsApp.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        *,
        transport_prefix: str = "",
        base_url: str = "https://api.twilio.com/2010-04-01",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, http_client=http_client)
        self.name = "twilio-whatsapp" if transport_prefix else "twilio-sms"
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._prefix = transport_prefix
        self._base_url = base_url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/Accounts/{self._account_sid}/Messages.json"

    async def send(self, to_phone: str, body: str) -> ProviderResult:
        client = await self._get_client()
        response = await client.post(
            self.endpoint,
            data={
                "To": f"{self._prefix}{to_phone}",
                "From": f"{self._prefix}{self._from_number}",
                "Body": body,
            },
            auth=(self._account_sid or "", self._auth_token or ""),
            timeout=self.timeout_seconds,
        )
        if response.is_success:
            sid = _json_field(response, "sid")
            logger.info("[%s] accepted → %s (sid=%s)", self.name, to_phone, sid)
            return ProviderResult(ok=True, message_id=sid, status_code=response.status_code)

        detail = _error_detail(response)
        logger.warning(
            "[%s] rejected → %s: HTTP %d %s",
            self.name, to_phone, response.status_code, detail,
        )
        return ProviderResult(ok=False, error=detail, status_code=response.status_code)


# ═══════════════════════════════════════════════════════════════════════════
# Resend (email)
# ═══════════════════════════════════════════════════════════════════════════

class ResendEmailClient(_HttpProvider, EmailProvider):
    """
    Resend transactional email.

    POST https://api.resend.com/emails
        json: {from, to: [address], subject, html}
        auth: Bearer api_key
    """

    name = "resend"

    def __init__(
        self,
        api_key: Optional[str],
        from_address: str,
        *,
        endpoint: str = "https://api.resend.com/emails",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, http_client=http_client)
        self._api_key = api_key
        self._from_address = from_address
        self._endpoint = endpoint

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, to_address: str, subject: str, html: str) -> ProviderResult:
        client = await self._get_client()
        payload: Dict[str, Any] = {
            "from": self._from_address,
            "to": [to_address],
            "subject": subject,
            "html": html,
        }
        response = await client.post(
            self._endpoint,
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self.timeout_seconds,
        )
        if response.is_success:
            message_id = _json_field(response, "id")
            logger.info("[resend] accepted → %s (id=%s)", to_address, message_id)
            return ProviderResult(ok=True, message_id=message_id, status_code=response.status_code)

        detail = _error_detail(response)
        logger.warning(
            "[resend] rejected → %s: HTTP %d %s",
            to_address, response.status_code, detail,
        )
        return ProviderResult(ok=False, error=detail, status_code=response.status_code)


# ═══════════════════════════════════════════════════════════════════════════
# Provider set
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ChannelProviders:
    """The three providers a dispatch fans out to."""
    sms: MessagingProvider
    whatsapp: MessagingProvider
    email: EmailProvider

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {"channel": "sms", "provider": self.sms.name, "configured": self.sms.is_configured},
            {"channel": "whatsapp", "provider": self.whatsapp.name, "configured": self.whatsapp.is_configured},
            {"channel": "email", "provider": self.email.name, "configured": self.email.is_configured},
        ]

    async def close(self) -> None:
        for provider in (self.sms, self.whatsapp, self.email):
            closer = getattr(provider, "close", None)
            if closer is not None:
                await closer()


def build_providers(
    config: Settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ChannelProviders:
    """Build the provider set from settings. Missing credentials are allowed."""
    timeout = config.PROVIDER_TIMEOUT_SECONDS
    return ChannelProviders(
        sms=TwilioMessagingClient(
            config.TWILIO_ACCOUNT_SID,
            config.TWILIO_AUTH_TOKEN,
            config.TWILIO_PHONE_NUMBER,
            base_url=config.TWILIO_API_BASE_URL,
            timeout_seconds=timeout,
            http_client=http_client,
        ),
        whatsapp=TwilioMessagingClient(
            config.TWILIO_ACCOUNT_SID,
            config.TWILIO_AUTH_TOKEN,
            config.TWILIO_WHATSAPP_NUMBER,
            transport_prefix="whatsapp:",
            base_url=config.TWILIO_API_BASE_URL,
            timeout_seconds=timeout,
            http_client=http_client,
        ),
        email=ResendEmailClient(
            config.RESEND_API_KEY,
            config.ALERT_FROM_EMAIL,
            endpoint=config.RESEND_API_URL,
            timeout_seconds=timeout,
            http_client=http_client,
        ),
    )
