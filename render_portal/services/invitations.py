"""
Invitation lifecycle: issue, inspect, accept, list and cancel.

Acceptance returns an ``AcceptResult`` instead of raising for token-level
failures so callers can keep the primary effect separate from reporting.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import EmailMismatch, InvitationInvalid, ValidationFailed
from render_portal.core.permissions import PERMISSION_LEVELS, Operation, is_valid_level
from render_portal.services.access import AccessGate
from render_portal.services.activity import record_activity
from render_portal.services.date_utils import add_days_iso, parse_timestamp, utc_now
from render_portal.services.email import EmailSender, invitation_email

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def normalize_email(value: Optional[str]) -> str:
    if not value or not value.strip():
        raise ValidationFailed("email is required")
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationFailed(f"invalid email: {exc}") from exc


def _loose_email(value: Optional[str]) -> str:
    try:
        return normalize_email(value)
    except ValidationFailed:
        return (value or "").strip().lower()


class AcceptError(str, Enum):
    INVALID_OR_EXPIRED = "invalid_or_expired"
    EMAIL_MISMATCH = "email_mismatch"


@dataclass(frozen=True)
class AcceptResult:
    ok: bool
    project_id: Optional[str] = None
    collaborator: Optional[Dict[str, Any]] = None
    error: Optional[AcceptError] = None
    already_accepted: bool = False

    @classmethod
    def failure(cls, error: AcceptError) -> "AcceptResult":
        return cls(ok=False, error=error)

    def raise_for_error(self) -> None:
        if self.error is AcceptError.EMAIL_MISMATCH:
            raise EmailMismatch()
        if self.error is AcceptError.INVALID_OR_EXPIRED:
            raise InvitationInvalid()


@dataclass(frozen=True)
class IssuedInvitation:
    invitation: Dict[str, Any]
    invitation_url: str
    email_sent: bool
    email_error: Optional[str] = None
    reused: bool = False


class InvitationService:
    def __init__(
        self,
        db: Any,
        email_sender: EmailSender,
        *,
        app_url: str,
        ttl_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.gate = AccessGate(db)
        self.email_sender = email_sender
        self.app_url = app_url.rstrip("/")
        self.ttl_days = ttl_days
        self.clock = clock

    def invitation_url(self, token: str) -> str:
        return f"{self.app_url}/project/invite/{token}"

    def _is_expired(self, invitation: Dict[str, Any], now: datetime) -> bool:
        expires_at = parse_timestamp(invitation.get("expires_at"))
        return expires_at is None or now > expires_at

    def _new_token(self) -> str:
        for _ in range(3):
            token = secrets.token_hex(TOKEN_BYTES)
            if self.db.get_invitation(token) is None:
                return token
        raise RuntimeError("could not allocate a unique invitation token")

    def _ensure_not_member(self, project: Dict[str, Any], email: str) -> None:
        owner = self.db.get_user_profile(str(project.get("user_id"))) or {}
        if _loose_email(owner.get("email")) == email:
            raise ValidationFailed("User already owns this project")
        for collaborator in self.db.list_collaborators(str(project["id"])):
            if _loose_email(collaborator.get("user_email")) == email:
                raise ValidationFailed("User is already a collaborator on this project")

    # -------------------------------------------------------------------------
    # Issue
    # -------------------------------------------------------------------------
    async def issue(
        self,
        identity: Optional[Identity],
        project_id: str,
        email: Optional[str],
        permission_level: Optional[str],
    ) -> IssuedInvitation:
        access = self.gate.require(identity, project_id, Operation.MANAGE)
        if not is_valid_level(permission_level):
            raise ValidationFailed(f"permission_level must be one of {', '.join(PERMISSION_LEVELS)}")
        address = normalize_email(email)
        project = access.project or {}
        self._ensure_not_member(project, address)

        now = self.clock()
        reused = False
        existing = self.db.find_pending_invitation(project_id, address)
        if existing and not self._is_expired(existing, now):
            # Re-sending restarts the validity window.
            reused = True
            invitation = self.db.update_invitation(
                str(existing["id"]),
                {"permission_level": permission_level, "expires_at": add_days_iso(now, self.ttl_days)},
            )
        else:
            if existing:
                self.db.update_invitation(str(existing["id"]), {"status": "expired"})
            invitation = self.db.insert_invitation(
                {
                    "project_id": project_id,
                    "email": address,
                    "permission_level": permission_level,
                    "token": self._new_token(),
                    "invited_by": identity.user_id,
                    "status": "pending",
                    "expires_at": add_days_iso(now, self.ttl_days),
                }
            )
            record_activity(
                self.db,
                project_id=project_id,
                user_id=identity.user_id,
                action="invitation_sent",
                details={"email": address, "permission_level": permission_level},
            )

        url = self.invitation_url(invitation["token"])
        message = invitation_email(
            address,
            url,
            permission_level,
            str(project.get("title") or "a project"),
            self.ttl_days,
        )
        try:
            await self.email_sender.send(message)
        except Exception as exc:
            # The invitation row is the source of truth; delivery is best effort.
            logger.warning("invitation email to %s failed for project %s: %s", address, project_id, exc)
            return IssuedInvitation(invitation, url, email_sent=False, email_error=str(exc), reused=reused)
        return IssuedInvitation(invitation, url, email_sent=True, reused=reused)

    # -------------------------------------------------------------------------
    # Inspect / accept
    # -------------------------------------------------------------------------
    def details(self, token: str) -> Dict[str, Any]:
        invitation = self.db.get_invitation(token) if token else None
        if not invitation or invitation.get("status") != "pending" or self._is_expired(invitation, self.clock()):
            raise InvitationInvalid()
        project = self.db.get_project(str(invitation["project_id"])) or {}
        return {
            "email": invitation["email"],
            "project_id": invitation["project_id"],
            "project_title": project.get("title"),
            "permission_level": invitation["permission_level"],
            "expires_at": invitation["expires_at"],
        }

    def accept(self, identity: Optional[Identity], token: str) -> AcceptResult:
        identity = require_identity(identity)
        invitation = self.db.get_invitation(token) if token else None
        if not invitation:
            return AcceptResult.failure(AcceptError.INVALID_OR_EXPIRED)
        if _loose_email(identity.email) != invitation.get("email"):
            logger.info("invitation %s: email mismatch for user %s", invitation.get("id"), identity.user_id)
            return AcceptResult.failure(AcceptError.EMAIL_MISMATCH)

        now = self.clock()
        project_id = str(invitation["project_id"])
        if self._is_expired(invitation, now):
            if invitation.get("status") == "pending":
                self.db.update_invitation(str(invitation["id"]), {"status": "expired"})
            return AcceptResult.failure(AcceptError.INVALID_OR_EXPIRED)

        status = invitation.get("status")
        if status == "accepted":
            if invitation.get("accepted_by") != identity.user_id:
                return AcceptResult.failure(AcceptError.INVALID_OR_EXPIRED)
            collaborator = self.db.get_collaborator(project_id, identity.user_id)
            if collaborator is None:
                # Removed after accepting; the token stays consumed.
                return AcceptResult.failure(AcceptError.INVALID_OR_EXPIRED)
            return AcceptResult(ok=True, project_id=project_id, collaborator=collaborator, already_accepted=True)
        if status != "pending":
            return AcceptResult.failure(AcceptError.INVALID_OR_EXPIRED)

        self.db.upsert_user_profile(
            {"user_id": identity.user_id, "email": _loose_email(identity.email), "full_name": identity.full_name}
        )
        collaborator = self.db.materialize_acceptance(
            str(invitation["id"]),
            {
                "project_id": project_id,
                "user_id": identity.user_id,
                "permission_level": invitation["permission_level"],
                "invited_by": invitation.get("invited_by"),
            },
            {"status": "accepted", "accepted_at": now.isoformat(), "accepted_by": identity.user_id},
        )
        record_activity(
            self.db,
            project_id=project_id,
            user_id=identity.user_id,
            action="collaborator_joined",
            details={"permission_level": invitation["permission_level"]},
        )
        logger.info("user %s joined project %s as %s", identity.user_id, project_id, invitation["permission_level"])
        return AcceptResult(ok=True, project_id=project_id, collaborator=collaborator)

    # -------------------------------------------------------------------------
    # Management
    # -------------------------------------------------------------------------
    def list_pending(self, identity: Optional[Identity], project_id: str) -> List[Dict[str, Any]]:
        self.gate.require(identity, project_id, Operation.MANAGE)
        now = self.clock()
        return [inv for inv in self.db.list_invitations(project_id, status="pending") if not self._is_expired(inv, now)]

    def cancel(self, identity: Optional[Identity], project_id: str, invitation_id: str) -> None:
        identity = require_identity(identity)
        self.gate.require(identity, project_id, Operation.MANAGE)
        invitation = self.db.get_invitation_by_id(invitation_id)
        if not invitation or str(invitation.get("project_id")) != project_id:
            raise InvitationInvalid()
        self.db.delete_invitation(invitation_id)
        record_activity(
            self.db,
            project_id=project_id,
            user_id=identity.user_id,
            action="invitation_cancelled",
            details={"email": invitation.get("email")},
        )
