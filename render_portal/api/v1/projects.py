from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from render_portal.api.v1.errors import as_http_error
from render_portal.core.auth import Identity, get_identity
from render_portal.core.config import load_settings
from render_portal.db.registry import get_db
from render_portal.models.schemas import ProjectCreate, ProjectUpdate
from render_portal.services.email import get_email_sender
from render_portal.services.notifier import Notifier
from render_portal.services.projects import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])


class RestoreIn(BaseModel):
    log_id: str


def _projects() -> ProjectService:
    return ProjectService(get_db())


def _notifier() -> Notifier:
    return Notifier(get_db(), get_email_sender(), app_url=load_settings().app_url)


def _describe(fields) -> str:
    labels = {"due_date": "due date"}
    return "Changed " + ", ".join(labels.get(k, k) for k in sorted(fields))


async def _notify_quietly(identity: Identity, project_id: str, action: str, details: str) -> Optional[Dict[str, Any]]:
    """Runs after the change is committed; a failure here never fails the request."""
    try:
        report = await _notifier().notify_collaborators(identity, project_id, action, details)
    except Exception:
        logger.warning("collaborator notification failed for project %s", project_id, exc_info=True)
        return None
    return report.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectCreate, identity: Identity = Depends(get_identity)):
    try:
        return _projects().create(identity, payload.model_dump(mode="json"))
    except Exception as exc:
        raise as_http_error(exc)


@router.get("")
def list_projects(identity: Identity = Depends(get_identity)):
    try:
        return {"items": _projects().list_for(identity)}
    except Exception as exc:
        raise as_http_error(exc)


@router.get("/{project_id}")
def get_project(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        return _projects().get(identity, project_id)
    except Exception as exc:
        raise as_http_error(exc)


@router.patch("/{project_id}")
async def update_project(project_id: str, payload: ProjectUpdate, identity: Identity = Depends(get_identity)):
    try:
        project = _projects().update(identity, project_id, payload.model_dump(mode="json", exclude_unset=True))
    except Exception as exc:
        raise as_http_error(exc)
    notifications = await _notify_quietly(
        identity, project_id, "Project updated", _describe(payload.model_fields_set)
    )
    return {"project": project, "notifications": notifications}


@router.delete("/{project_id}")
def delete_project(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        _projects().delete(identity, project_id)
        return {"deleted": True, "project_id": project_id}
    except Exception as exc:
        raise as_http_error(exc)


@router.get("/{project_id}/history")
def project_history(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        return {"items": _projects().history(identity, project_id)}
    except Exception as exc:
        raise as_http_error(exc)


@router.post("/{project_id}/restore")
async def restore_project(project_id: str, payload: RestoreIn, identity: Identity = Depends(get_identity)):
    try:
        project = _projects().restore(identity, project_id, payload.log_id)
    except Exception as exc:
        raise as_http_error(exc)
    notifications = await _notify_quietly(
        identity, project_id, "Project restored", f"Restored from history entry {payload.log_id}"
    )
    return {"project": project, "notifications": notifications}
