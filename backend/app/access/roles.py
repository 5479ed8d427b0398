"""
roles.py — Role-based access control with an auditable grant action.

Two roles: USER (everyone, implicitly) and ADMIN. A role change is a
grant performed by an acting user who must already be an ADMIN; there is
no shared secret. Every grant is appended to an audit log that records
who changed whom, from what, to what, and when.

The first administrators come from configuration (BOOTSTRAP_ADMIN_IDS)
and appear in the audit log with actor "system".

State is process-local; a deployment backed by a database would keep the
same interface.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from backend.app.core.errors import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class Role(str, Enum):
    USER  = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class RoleGrant:
    """One audited role change."""
    actor_id: str
    target_id: str
    role: Role
    previous_role: Role
    grant_id: str = field(default_factory=lambda: f"GRT-{uuid.uuid4().hex[:10].upper()}")
    granted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grant_id": self.grant_id,
            "actor_id": self.actor_id,
            "target_id": self.target_id,
            "role": self.role.value,
            "previous_role": self.previous_role.value,
            "granted_at": self.granted_at.isoformat(),
        }


class RoleRegistry:
    """Current role per user plus the append-only grant log."""

    def __init__(self, bootstrap_admins: Iterable[str] = ()):
        self._roles: Dict[str, Role] = {}
        self._audit: List[RoleGrant] = []
        self._lock = threading.Lock()
        for user_id in bootstrap_admins:
            if user_id and user_id.strip():
                self._apply(SYSTEM_ACTOR, user_id.strip(), Role.ADMIN)

    def role_of(self, user_id: str) -> Role:
        return self._roles.get(user_id, Role.USER)

    def is_admin(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and self.role_of(user_id) == Role.ADMIN

    def require_admin(self, actor_id: Optional[str]) -> None:
        if not self.is_admin(actor_id):
            raise AuthorizationError("Administrator role required", actor_id=actor_id)

    def _apply(self, actor_id: str, target_id: str, role: Role) -> RoleGrant:
        with self._lock:
            grant = RoleGrant(
                actor_id=actor_id,
                target_id=target_id,
                role=role,
                previous_role=self.role_of(target_id),
            )
            self._roles[target_id] = role
            self._audit.append(grant)
        logger.info(
            "Role grant %s: %s set %s → %s (was %s)",
            grant.grant_id, actor_id, target_id, role.value, grant.previous_role.value,
        )
        return grant

    def grant(self, actor_id: Optional[str], target_id: Optional[str], role: Role) -> RoleGrant:
        """
        Set `target_id`'s role on behalf of `actor_id`.

        Raises
        ------
        ValidationError
            Blank target id.
        AuthorizationError
            The actor is not an administrator.
        """
        if not target_id or not target_id.strip():
            raise ValidationError("target user id is required", field="user_id")
        if not self.is_admin(actor_id):
            logger.warning(
                "Rejected role grant by %s for %s → %s",
                actor_id or "<anonymous>", target_id, role.value,
            )
            raise AuthorizationError("Administrator role required", actor_id=actor_id)
        return self._apply(actor_id, target_id.strip(), role)

    def audit_log(self) -> List[RoleGrant]:
        with self._lock:
            return list(self._audit)
