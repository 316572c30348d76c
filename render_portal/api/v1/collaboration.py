from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from render_portal.api.v1.errors import as_http_error
from render_portal.core.auth import Identity, get_identity
from render_portal.core.config import load_settings
from render_portal.db.registry import get_db
from render_portal.services.collaborators import CollaboratorService
from render_portal.services.email import get_email_sender
from render_portal.services.invitations import InvitationService

router = APIRouter(tags=["Collaboration"])


class InviteIn(BaseModel):
    email: str
    permission_level: str = Field(default="view", description="view|edit|admin")


class PermissionUpdateIn(BaseModel):
    permission_level: str = Field(description="view|edit|admin")


def _collaborators() -> CollaboratorService:
    return CollaboratorService(get_db())


def _invitations() -> InvitationService:
    settings = load_settings()
    return InvitationService(
        get_db(),
        get_email_sender(),
        app_url=settings.app_url,
        ttl_days=settings.invitation_ttl_days,
    )


# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------
@router.get("/projects/{project_id}/collaborators")
def list_collaborators(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        return {"items": _collaborators().list(identity, project_id)}
    except Exception as exc:
        raise as_http_error(exc)


@router.patch("/projects/{project_id}/collaborators/{user_id}")
def change_permission(
    project_id: str,
    user_id: str,
    payload: PermissionUpdateIn,
    identity: Identity = Depends(get_identity),
):
    try:
        return _collaborators().change_permission(identity, project_id, user_id, payload.permission_level)
    except Exception as exc:
        raise as_http_error(exc)


@router.delete("/projects/{project_id}/collaborators/{user_id}")
def remove_collaborator(project_id: str, user_id: str, identity: Identity = Depends(get_identity)):
    try:
        _collaborators().remove(identity, project_id, user_id)
        return {"removed": True, "user_id": user_id}
    except Exception as exc:
        raise as_http_error(exc)


@router.get("/projects/{project_id}/collaboration-stats")
def collaboration_stats(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        return _collaborators().stats(identity, project_id)
    except Exception as exc:
        raise as_http_error(exc)


# -----------------------------------------------------------------------------
# Invitations
# -----------------------------------------------------------------------------
@router.post("/projects/{project_id}/invitations", status_code=status.HTTP_201_CREATED)
async def send_invitation(project_id: str, payload: InviteIn, identity: Identity = Depends(get_identity)):
    try:
        issued = await _invitations().issue(identity, project_id, payload.email, payload.permission_level)
    except Exception as exc:
        raise as_http_error(exc)
    return {
        "invitation": issued.invitation,
        "invitation_url": issued.invitation_url,
        "email_sent": issued.email_sent,
        "email_error": issued.email_error,
        "reused": issued.reused,
    }


@router.get("/projects/{project_id}/invitations")
def list_invitations(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        return {"items": _invitations().list_pending(identity, project_id)}
    except Exception as exc:
        raise as_http_error(exc)


@router.delete("/projects/{project_id}/invitations/{invitation_id}")
def cancel_invitation(project_id: str, invitation_id: str, identity: Identity = Depends(get_identity)):
    try:
        _invitations().cancel(identity, project_id, invitation_id)
        return {"cancelled": True, "invitation_id": invitation_id}
    except Exception as exc:
        raise as_http_error(exc)


@router.get("/invitations/{token}")
def invitation_details(token: str):
    try:
        return _invitations().details(token)
    except Exception as exc:
        raise as_http_error(exc)


@router.post("/invitations/{token}/accept")
def accept_invitation(token: str, identity: Identity = Depends(get_identity)):
    try:
        result = _invitations().accept(identity, token)
        result.raise_for_error()
    except Exception as exc:
        raise as_http_error(exc)
    return {
        "ok": result.ok,
        "project_id": result.project_id,
        "collaborator": result.collaborator,
        "already_accepted": result.already_accepted,
    }
