"""
FastAPI route: emergency alert dispatch.

Provides endpoints to:
    POST /api/v1/alerts/dispatch   — alert a caller's contacts about a call
    GET  /api/v1/alerts/channels   — channel providers and their configuration
    GET  /api/v1/alerts/health     — service health

The dispatch body accepts both the camelCase keys sent by the dashboard
(`callerId`/`userId`, `incidentType`, `createdAt`) and snake_case.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from backend.app.alerts.dispatcher import AlertDispatcher
from backend.app.alerts.models import AlertChannel, CallDetails, Urgency
from backend.app.api.deps import get_dispatcher

router = APIRouter(prefix="/api/v1/alerts", tags=["alert-dispatch"])


# ---------------------------------------------------------------------------
# Request / Response Schemas
# ---------------------------------------------------------------------------

class CallDetailsInput(BaseModel):
    """The emergency call that triggered the dispatch."""
    transcript: Optional[str] = Field(
        None, examples=["Smoke coming from the second floor, two people inside."],
    )
    urgency: Optional[str] = Field(
        None, examples=["critical"],
        description="low / medium / high / critical",
    )
    location: Optional[str] = Field(None, examples=["221B Baker Street"])
    incident_type: Optional[str] = Field(
        None, examples=["fire"],
        validation_alias=AliasChoices("incidentType", "incident_type"),
    )
    created_at: Optional[datetime] = Field(
        None, examples=["2026-10-17T14:05:00Z"],
        validation_alias=AliasChoices("createdAt", "created_at"),
    )


class DispatchRequest(BaseModel):
    """Request body for POST /api/v1/alerts/dispatch."""
    caller_id: Optional[str] = Field(
        None, examples=["u1"],
        validation_alias=AliasChoices("callerId", "userId", "caller_id"),
    )
    call_details: Optional[CallDetailsInput] = Field(
        None,
        validation_alias=AliasChoices("callDetails", "call_details"),
    )


class ChannelTallyOut(BaseModel):
    sent: int = 0
    failed: int = 0


class DispatchResults(BaseModel):
    sms: ChannelTallyOut
    whatsapp: ChannelTallyOut
    email: ChannelTallyOut


class DispatchResponse(BaseModel):
    """Dispatch outcome; partial channel failure is still a success."""
    success: bool = True
    results: DispatchResults
    dispatch_id: str
    contact_count: int
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _to_call_details(details: Optional[CallDetailsInput]) -> Optional[CallDetails]:
    """Convert the Pydantic model to the dataclass; validation happens in the dispatcher."""
    if details is None:
        return None
    created_at = details.created_at or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return CallDetails(
        transcript=details.transcript or "",
        urgency=details.urgency or "",
        location=details.location or None,
        incident_type=details.incident_type or None,
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/dispatch",
    response_model=DispatchResponse,
    summary="Alert a caller's emergency contacts",
    description=(
        "Loads the caller's emergency contacts and sends the alert over SMS, "
        "WhatsApp and (where an address is on file) email. Individual "
        "delivery failures are counted, not raised."
    ),
)
async def dispatch_alerts(
    request: DispatchRequest,
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
):
    """Fan the call out to every contact and return per-channel tallies."""
    result = await dispatcher.dispatch(
        request.caller_id,
        _to_call_details(request.call_details),
    )
    return DispatchResponse(
        results=DispatchResults(**result.to_dict()),
        dispatch_id=result.dispatch_id,
        contact_count=result.contact_count,
        message=None if result.contact_count else "No contacts to alert",
    )


@router.get(
    "/channels",
    summary="List channels",
    description="Each delivery channel with its provider and whether it is configured.",
)
async def list_channels(dispatcher: AlertDispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    channels: List[Dict[str, Any]] = dispatcher.providers.describe()
    return {
        "channels": channels,
        "urgency_levels": [u.value for u in Urgency],
        "timeout_seconds": dispatcher.timeout_seconds,
    }


@router.get(
    "/health",
    summary="Alert dispatch health check",
)
async def health(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """Check alert dispatch service health."""
    configured = [c["channel"] for c in dispatcher.providers.describe() if c["configured"]]
    store = dispatcher.contacts_store
    healthy = store.durable and len(configured) == len(AlertChannel)
    return {
        "status": "healthy" if healthy else "degraded",
        "service": "alert-dispatch",
        "contacts_store": store.name,
        "contacts_store_durable": store.durable,
        "channels_configured": configured,
    }
