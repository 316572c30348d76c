from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import AccessDenied, ValidationFailed
from render_portal.core.permissions import PERMISSION_LEVELS, Operation, is_valid_level
from render_portal.services.access import AccessGate
from render_portal.services.activity import record_activity

logger = logging.getLogger(__name__)

LISTED_FIELDS = ("project_id", "user_id", "permission_level", "joined_at", "user_email", "user_full_name")


class CollaboratorService:
    def __init__(self, db: Any) -> None:
        self.db = db
        self.gate = AccessGate(db)

    def list(self, identity: Optional[Identity], project_id: str) -> List[Dict[str, Any]]:
        self.gate.require(identity, project_id, Operation.READ)
        return [{k: row.get(k) for k in LISTED_FIELDS} for row in self.db.list_collaborators(project_id)]

    def change_permission(
        self,
        identity: Optional[Identity],
        project_id: str,
        user_id: str,
        permission_level: Optional[str],
    ) -> Dict[str, Any]:
        identity = require_identity(identity)
        access = self.gate.require(identity, project_id, Operation.MANAGE)
        if not is_valid_level(permission_level):
            raise ValidationFailed(f"permission_level must be one of {', '.join(PERMISSION_LEVELS)}")
        if access.project and str(access.project.get("user_id")) == user_id:
            raise ValidationFailed("The project owner's permission cannot be changed")

        existing = self.db.get_collaborator(project_id, user_id)
        if existing is None:
            raise KeyError(f"collaborator not found: {user_id}")
        updated = self.db.update_collaborator(project_id, user_id, {"permission_level": permission_level})
        if updated is None:
            raise KeyError(f"collaborator not found: {user_id}")

        record_activity(
            self.db,
            project_id=project_id,
            user_id=identity.user_id,
            action="permission_changed",
            details={
                "collaborator_id": user_id,
                "previous_level": existing.get("permission_level"),
                "new_level": permission_level,
            },
        )
        logger.info(
            "project %s: %s changed %s from %s to %s",
            project_id,
            identity.user_id,
            user_id,
            existing.get("permission_level"),
            permission_level,
        )
        return updated

    def remove(self, identity: Optional[Identity], project_id: str, user_id: str) -> None:
        """Admins may remove anyone; any collaborator may remove themself."""
        identity = require_identity(identity)
        access = self.gate.resolve(identity, project_id)
        if access.project is None:
            raise AccessDenied()
        leaving = identity.user_id == user_id and access.level != "none" and not access.is_owner
        if not leaving:
            access = self.gate.require(identity, project_id, Operation.MANAGE)
        if not self.db.delete_collaborator(project_id, user_id):
            raise KeyError(f"collaborator not found: {user_id}")
        record_activity(
            self.db,
            project_id=project_id,
            user_id=identity.user_id,
            action="collaborator_left" if leaving else "collaborator_removed",
            details={"collaborator_id": user_id},
        )

    def stats(self, identity: Optional[Identity], project_id: str) -> Dict[str, Any]:
        access = self.gate.require(identity, project_id, Operation.READ)
        owner_id = str((access.project or {}).get("user_id"))
        owner = self.db.get_user_profile(owner_id) or {}
        return {
            "total_collaborators": len(self.db.list_collaborators(project_id)),
            "pending_invitations": len(self.db.list_invitations(project_id, status="pending")),
            "project_owner": {
                "user_id": owner_id,
                "email": owner.get("email"),
                "full_name": owner.get("full_name"),
            },
        }
