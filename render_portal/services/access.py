"""
Project access-control gate.

Every read or mutation of a project, its collaborators, invitations, board or
history resolves the caller's access here first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import AccessDenied
from render_portal.core.permissions import Operation, level_allows

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectAccess:
    project_id: str
    level: str  # none | view | edit | admin
    is_owner: bool = False
    project: Optional[Dict[str, Any]] = None

    @property
    def role(self) -> str:
        """The caller's role as shown to clients: owner, admin, edit, view or none."""
        return "owner" if self.is_owner else self.level

    def allows(self, operation: Operation) -> bool:
        if operation is Operation.DELETE:
            return self.is_owner
        return level_allows(self.level, operation)


class AccessGate:
    def __init__(self, db: Any):
        self.db = db

    def resolve(self, identity: Optional[Identity], project_id: str) -> ProjectAccess:
        identity = require_identity(identity)
        project = self.db.get_project(project_id)
        if not project:
            return ProjectAccess(project_id=project_id, level="none")
        # Owner first: a stale collaborator row for the owner never downgrades them.
        if str(project.get("user_id")) == identity.user_id:
            return ProjectAccess(project_id=project_id, level="admin", is_owner=True, project=project)
        collaborator = self.db.get_collaborator(project_id, identity.user_id)
        if not collaborator:
            return ProjectAccess(project_id=project_id, level="none", project=project)
        level = collaborator.get("permission_level")
        if level not in {"view", "edit", "admin"}:
            logger.warning("ignoring unknown permission level %r on project %s", level, project_id)
            level = "none"
        return ProjectAccess(project_id=project_id, level=level, project=project)

    def require(self, identity: Optional[Identity], project_id: str, operation: Operation) -> ProjectAccess:
        access = self.resolve(identity, project_id)
        if access.project is None or not access.allows(operation):
            logger.info(
                "access denied: user=%s project=%s op=%s level=%s",
                identity.user_id if identity else None,
                project_id,
                operation.value,
                access.level,
            )
            raise AccessDenied()
        return access

    def can(self, identity: Optional[Identity], project_id: str, operation: Operation) -> bool:
        access = self.resolve(identity, project_id)
        return access.project is not None and access.allows(operation)
