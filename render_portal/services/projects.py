"""
Render projects: creation, dashboard listing, edits with an activity trail,
and restore from a logged snapshot.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import ValidationFailed
from render_portal.core.permissions import Operation
from render_portal.models.schemas import ProjectCreate, ProjectUpdate
from render_portal.services.access import AccessGate
from render_portal.services.activity import record_activity
from render_portal.services.date_utils import utc_now
from render_portal.services.user_settings import UserSettingsService

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "retailer", "due_date", "items")


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid project data"


def _snapshot(project: Dict[str, Any]) -> Dict[str, Any]:
    return {k: project.get(k) for k in ("id", "title", "retailer", "due_date", "items", "updated_at")}


def _field_changes(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for key in ("title", "retailer", "due_date"):
        if before.get(key) != after.get(key):
            changes[key] = {"from": before.get(key), "to": after.get(key)}
    before_items = before.get("items") or []
    after_items = after.get("items") or []
    if len(before_items) != len(after_items):
        changes["items_count"] = {"from": len(before_items), "to": len(after_items)}
    elif before_items != after_items:
        changes["items"] = {"modified": True}
    return changes


class ProjectService:
    def __init__(self, db: Any, *, clock: Callable[[], Any] = utc_now) -> None:
        self.db = db
        self.gate = AccessGate(db)
        self.settings = UserSettingsService(db, clock=clock)

    def create(self, identity: Optional[Identity], data: Dict[str, Any]) -> Dict[str, Any]:
        identity = require_identity(identity)
        try:
            validated = ProjectCreate.model_validate(data)
        except ValidationError as exc:
            raise ValidationFailed(_validation_message(exc)) from exc

        self.db.upsert_user_profile(
            {"user_id": identity.user_id, "email": identity.email.strip().lower(), "full_name": identity.full_name}
        )
        row = validated.model_dump(mode="json")
        row["user_id"] = identity.user_id
        if not row.get("due_date"):
            row["due_date"] = self.settings.due_date_for(identity.user_id)
        project = self.db.insert_project(row)
        record_activity(
            self.db,
            project_id=str(project["id"]),
            user_id=identity.user_id,
            action="project_created",
            details={"new_data": _snapshot(project)},
        )
        logger.info("project %s created by %s", project["id"], identity.user_id)
        return project

    def list_for(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        identity = require_identity(identity)
        rows: List[Dict[str, Any]] = []
        owned_ids = set()
        for project in self.db.list_owned_projects(identity.user_id):
            owned_ids.add(project["id"])
            rows.append({**project, "permission_level": "admin", "is_owner": True})
        for project in self.db.list_shared_projects(identity.user_id):
            if project["id"] in owned_ids:
                continue
            rows.append({**project, "is_owner": False})
        rows.sort(key=lambda r: str(r.get("created_at") or ""), reverse=True)
        return rows

    def get(self, identity: Optional[Identity], project_id: str) -> Dict[str, Any]:
        access = self.gate.require(identity, project_id, Operation.READ)
        return {**(access.project or {}), "user_permission": access.role}

    def update(self, identity: Optional[Identity], project_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        identity = require_identity(identity)
        access = self.gate.require(identity, project_id, Operation.EDIT)
        try:
            validated = ProjectUpdate.model_validate(changes)
        except ValidationError as exc:
            raise ValidationFailed(_validation_message(exc)) from exc
        fields = validated.model_dump(mode="json", exclude_unset=True)
        for key in ("title", "retailer", "items"):
            if key in fields and fields[key] is None:
                raise ValidationFailed(f"{key} cannot be cleared")
        if not fields:
            raise ValidationFailed("no changes supplied")
        return self._apply(identity, access.project or {}, fields, action="project_updated")

    def _apply(
        self,
        identity: Identity,
        before: Dict[str, Any],
        fields: Dict[str, Any],
        *,
        action: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        project_id = str(before["id"])
        updated = self.db.update_project(project_id, fields)
        details = {
            "previous_data": _snapshot(before),
            "new_data": _snapshot(updated),
            "changes": _field_changes(before, updated),
        }
        if extra:
            details.update(extra)
        record_activity(self.db, project_id=project_id, user_id=identity.user_id, action=action, details=details)
        return updated

    def delete(self, identity: Optional[Identity], project_id: str) -> None:
        identity = require_identity(identity)
        self.gate.require(identity, project_id, Operation.DELETE)
        self.db.delete_project(project_id)
        logger.info("project %s deleted by %s", project_id, identity.user_id)

    def history(self, identity: Optional[Identity], project_id: str) -> List[Dict[str, Any]]:
        self.gate.require(identity, project_id, Operation.READ)
        return self.db.list_project_logs(project_id)

    def restore(self, identity: Optional[Identity], project_id: str, log_id: str) -> Dict[str, Any]:
        identity = require_identity(identity)
        access = self.gate.require(identity, project_id, Operation.EDIT)
        entry = self.db.get_project_log(project_id, log_id)
        if entry is None:
            raise KeyError(f"log entry not found: {log_id}")
        previous = (entry.get("details") or {}).get("previous_data")
        if not previous:
            raise ValidationFailed("log entry has no previous state to restore")
        fields = {k: previous.get(k) for k in EDITABLE_FIELDS if k in previous}
        return self._apply(
            identity,
            access.project or {},
            fields,
            action="project_restored",
            extra={"restored_from_log_id": log_id},
        )
