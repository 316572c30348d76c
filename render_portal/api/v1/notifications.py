from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from render_portal.api.v1.errors import as_http_error
from render_portal.core.auth import Identity, get_identity
from render_portal.core.config import load_settings
from render_portal.db.registry import get_db
from render_portal.models.schemas import NotificationResult
from render_portal.services.email import get_email_sender
from render_portal.services.notifier import Notifier

router = APIRouter(prefix="/projects", tags=["Notifications"])


class NotifyIn(BaseModel):
    action: str = Field(min_length=1)
    details: str = ""


class AccessRequestIn(BaseModel):
    action: str = "edit the project"


def _notifier() -> Notifier:
    return Notifier(get_db(), get_email_sender(), app_url=load_settings().app_url)


@router.post("/{project_id}/notify", response_model=NotificationResult)
async def notify_collaborators(project_id: str, payload: NotifyIn, identity: Identity = Depends(get_identity)):
    try:
        report = await _notifier().notify_collaborators(identity, project_id, payload.action, payload.details)
    except Exception as exc:
        raise as_http_error(exc)
    return report.to_dict()


@router.post("/{project_id}/request-access", response_model=NotificationResult)
async def request_access(project_id: str, payload: AccessRequestIn, identity: Identity = Depends(get_identity)):
    try:
        report = await _notifier().request_access(identity, project_id, payload.action)
    except Exception as exc:
        raise as_http_error(exc)
    return report.to_dict()
