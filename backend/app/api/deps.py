"""
Request dependencies — service objects and the acting user.

Services are built once in the application lifespan and kept on
`app.state`; routes receive them through these dependencies so tests can
swap them with `app.dependency_overrides`.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from backend.app.access.roles import RoleRegistry
from backend.app.alerts.dispatcher import AlertDispatcher


def get_dispatcher(request: Request) -> AlertDispatcher:
    return request.app.state.dispatcher


def get_role_registry(request: Request) -> RoleRegistry:
    return request.app.state.roles


def get_actor_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Acting user id, as asserted by the upstream authentication layer."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()
