"""
FastAPI route: role grants.

    POST /api/v1/roles/grant   — an administrator sets another user's role
    GET  /api/v1/roles/audit   — administrators read the grant log

The acting user is identified by the X-User-Id header set by the
authentication layer in front of this service.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from backend.app.access.roles import Role, RoleRegistry
from backend.app.api.deps import get_actor_id, get_role_registry

router = APIRouter(prefix="/api/v1/roles", tags=["roles"])


class GrantRequest(BaseModel):
    user_id: str = Field(
        ..., examples=["u42"],
        validation_alias=AliasChoices("userId", "user_id"),
    )
    role: Role = Field(Role.ADMIN, examples=["admin"])


@router.post("/grant", summary="Grant a role to a user")
async def grant_role(
    request: GrantRequest,
    actor_id: Optional[str] = Depends(get_actor_id),
    roles: RoleRegistry = Depends(get_role_registry),
):
    grant = roles.grant(actor_id, request.user_id, request.role)
    return {"success": True, "grant": grant.to_dict()}


@router.get("/audit", summary="Role grant audit log")
async def audit_log(
    actor_id: Optional[str] = Depends(get_actor_id),
    roles: RoleRegistry = Depends(get_role_registry),
):
    roles.require_admin(actor_id)
    grants = roles.audit_log()
    return {"count": len(grants), "grants": [g.to_dict() for g in grants]}
