"""
Collaborator notification fan-out.

One coroutine per recipient, joined with ``asyncio.gather``. Delivery errors
are captured per recipient and reported; they never propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import ValidationFailed
from render_portal.core.permissions import Operation
from render_portal.services.access import AccessGate
from render_portal.services.email import (
    EmailMessage,
    EmailSender,
    access_request_email,
    project_update_email,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationReport:
    successful: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return len(self.successful)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {"successful": list(self.successful), "failed": [dict(f) for f in self.failed]}


class Notifier:
    def __init__(self, db: Any, email_sender: EmailSender, *, app_url: str) -> None:
        self.db = db
        self.gate = AccessGate(db)
        self.email_sender = email_sender
        self.app_url = app_url.rstrip("/")

    async def _deliver(self, message: EmailMessage) -> Optional[str]:
        try:
            await self.email_sender.send(message)
        except Exception as exc:
            logger.warning("notification to %s failed: %s", message.to, exc)
            return str(exc) or exc.__class__.__name__
        return None

    async def _fan_out(self, messages: List[EmailMessage]) -> NotificationReport:
        report = NotificationReport()
        if not messages:
            return report
        errors = await asyncio.gather(*(self._deliver(m) for m in messages))
        for message, error in zip(messages, errors):
            if error is None:
                report.successful.append(message.to)
            else:
                report.failed.append({"email": message.to, "error": error})
        return report

    async def notify_collaborators(
        self,
        identity: Optional[Identity],
        project_id: str,
        action: str,
        details: str = "",
    ) -> NotificationReport:
        identity = require_identity(identity)
        if not action or not action.strip():
            raise ValidationFailed("action is required")
        access = self.gate.require(identity, project_id, Operation.READ)
        project = access.project or {}

        actor_email = (identity.email or "").strip().lower()
        recipients: List[str] = []
        for collaborator in self.db.list_collaborators(project_id):
            email = (collaborator.get("user_email") or "").strip().lower()
            if not email or collaborator.get("user_id") == identity.user_id or email == actor_email:
                continue
            if email not in recipients:
                recipients.append(email)

        dashboard_url = f"{self.app_url}/project/{project_id}"
        messages = [
            project_update_email(
                to,
                str(project.get("title") or "Untitled project"),
                action.strip(),
                details or "",
                identity.display_name,
                identity.email or "",
                dashboard_url,
            )
            for to in recipients
        ]
        report = await self._fan_out(messages)
        logger.info(
            "project %s notification %r: %d sent, %d failed",
            project_id,
            action,
            report.sent_count,
            report.failed_count,
        )
        return report

    async def request_access(
        self,
        identity: Optional[Identity],
        project_id: str,
        action: str = "edit the project",
    ) -> NotificationReport:
        identity = require_identity(identity)
        access = self.gate.require(identity, project_id, Operation.READ)
        if access.is_owner:
            raise ValidationFailed("Project owners already have full access")
        project = access.project or {}
        owner = self.db.get_user_profile(str(project.get("user_id"))) or {}
        owner_email = (owner.get("email") or "").strip().lower()
        if not owner_email:
            return NotificationReport(failed=[{"email": "", "error": "Project owner has no email address on file"}])

        message = access_request_email(
            owner_email,
            str(project.get("title") or "Untitled project"),
            identity.display_name,
            identity.email or "",
            action or "edit the project",
            f"{self.app_url}/project/{project_id}",
        )
        return await self._fan_out([message])
