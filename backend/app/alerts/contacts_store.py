"""
contacts_store.py — Read access to callers' emergency contacts.

The dispatcher only ever reads a snapshot of a caller's contacts at
dispatch time: no caching, no writes. Two backends:

    InMemoryContactsStore   — dict keyed by caller id (tests, local runs)
    SupabaseContactsStore   — PostgREST query against the contacts table

        GET {SUPABASE_URL}/rest/v1/{table}
            ?user_id=eq.{caller_id}&select=*&order=is_primary.desc
        headers: apikey / Authorization: Bearer <service role key>

Any failure to read (transport error, non-2xx, unparseable rows) raises
ContactsStoreError so the dispatch aborts before any channel attempt.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

import httpx

from backend.app.alerts.models import Contact
from backend.app.core.config import Settings
from backend.app.core.errors import ContactsStoreError

logger = logging.getLogger(__name__)


class ContactsStore(ABC):
    """Read-only contacts lookup."""

    name: str = "contacts"
    # False when contacts do not come from a real backend
    durable: bool = True

    @abstractmethod
    async def list_contacts(self, caller_id: str) -> List[Contact]:
        """All contacts registered by `caller_id` (possibly empty)."""

    async def ping(self) -> None:
        """Raise ContactsStoreError if the store cannot be reached."""

    async def close(self) -> None:
        return None


class InMemoryContactsStore(ContactsStore):
    """
    Dict-backed store; contacts are listed primary first, then insertion order.

    Nothing outside the process can add contacts, so a service running on
    it alerts nobody. Health reports it as degraded.
    """

    name = "memory"
    durable = False

    def __init__(self, contacts: Optional[Dict[str, Iterable[Contact]]] = None):
        self._contacts: Dict[str, List[Contact]] = {
            caller_id: list(items) for caller_id, items in (contacts or {}).items()
        }

    def add_contact(self, caller_id: str, contact: Contact) -> None:
        self._contacts.setdefault(caller_id, []).append(contact)

    def clear(self) -> None:
        self._contacts.clear()

    async def list_contacts(self, caller_id: str) -> List[Contact]:
        contacts = self._contacts.get(caller_id, [])
        return sorted(contacts, key=lambda c: not c.is_primary)


class SupabaseContactsStore(ContactsStore):
    """Contacts read through the Supabase REST (PostgREST) interface."""

    name = "supabase"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        table: str = "emergency_contacts",
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._table = table
        self._timeout = timeout_seconds
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/rest/v1/{self._table}"

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Accept": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _get(self, params: Dict[str, str], caller_id: Optional[str] = None) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.get(self.endpoint, params=params, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Contacts store HTTP %d: %s", e.response.status_code, e.response.text[:200])
            raise ContactsStoreError(
                f"HTTP {e.response.status_code}", caller_id=caller_id,
            ) from e
        except httpx.HTTPError as e:
            logger.error("Contacts store unreachable: %s", e)
            raise ContactsStoreError(str(e) or type(e).__name__, caller_id=caller_id) from e
        return response

    async def list_contacts(self, caller_id: str) -> List[Contact]:
        response = await self._get(
            {
                "user_id": f"eq.{caller_id}",
                "select": "*",
                "order": "is_primary.desc,created_at.asc",
            },
            caller_id=caller_id,
        )
        try:
            rows = response.json()
            return [Contact.from_row(row) for row in rows]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Malformed contacts payload for %s: %s", caller_id, e)
            raise ContactsStoreError("malformed contacts payload", caller_id=caller_id) from e

    async def ping(self) -> None:
        await self._get({"select": "id", "limit": "1"})


def build_contacts_store(config: Settings) -> ContactsStore:
    """Pick the contacts backend named by CONTACTS_BACKEND."""
    backend = config.CONTACTS_BACKEND.lower()
    if backend == "memory":
        return InMemoryContactsStore()
    if backend == "supabase":
        if not (config.SUPABASE_URL and config.SUPABASE_SERVICE_ROLE_KEY):
            raise ValueError(
                "CONTACTS_BACKEND=supabase requires SUPABASE_URL and "
                "SUPABASE_SERVICE_ROLE_KEY"
            )
        return SupabaseContactsStore(
            config.SUPABASE_URL,
            config.SUPABASE_SERVICE_ROLE_KEY,
            table=config.CONTACTS_TABLE,
            timeout_seconds=config.PROVIDER_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown contacts backend: {config.CONTACTS_BACKEND}")
