from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import httpx

from render_portal.core.config import Settings
from render_portal.core.errors import DeliveryFailed

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str


class EmailSender:
    async def send(self, message: EmailMessage) -> str:
        """Deliver one message and return the provider's message id."""
        raise NotImplementedError


class ResendEmailSender(EmailSender):
    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.timeout_s = timeout_s
        self._transport = transport

    async def send(self, message: EmailMessage) -> str:
        payload = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                r = await client.post(RESEND_API_URL, json=payload, headers=headers)
                r.raise_for_status()
                body: Dict[str, Any] = r.json()
        except httpx.HTTPError as exc:
            raise DeliveryFailed(f"email to {message.to} failed: {exc}") from exc
        return str(body.get("id", ""))


@dataclass
class OutboxEmailSender(EmailSender):
    """
    Keeps messages in memory instead of delivering them. Used when no email
    provider is configured, and in tests. Addresses in ``fail_for`` raise.
    """

    sent: List[EmailMessage] = field(default_factory=list)
    fail_for: Set[str] = field(default_factory=set)

    async def send(self, message: EmailMessage) -> str:
        if message.to in self.fail_for:
            raise DeliveryFailed(f"email to {message.to} failed: mailbox unavailable")
        self.sent.append(message)
        logger.info("[outbox] to=%s subject=%s", message.to, message.subject)
        return f"outbox-{len(self.sent)}"


_sender: Optional[EmailSender] = None


def set_email_sender(sender: EmailSender) -> None:
    global _sender
    _sender = sender


def get_email_sender() -> EmailSender:
    if _sender is None:
        raise RuntimeError("Email sender not initialized")
    return _sender


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.resend_api_key:
        return ResendEmailSender(settings.resend_api_key, settings.email_from, timeout_s=settings.email_timeout_s)
    logger.warning("RESEND_API_KEY not set: outbound email is kept in the outbox only")
    return OutboxEmailSender()


# -----------------------------------------------------------------------------
# Message bodies
# -----------------------------------------------------------------------------
def invitation_email(to: str, invitation_url: str, permission_level: str, project_title: str, ttl_days: int) -> EmailMessage:
    url = html.escape(invitation_url, quote=True)
    body = (
        "<h2>Project Collaboration Invitation</h2>"
        f"<p>You have been invited to collaborate on <strong>{html.escape(project_title)}</strong> "
        f"with <strong>{html.escape(permission_level)}</strong> permissions.</p>"
        f'<p><a href="{url}">Accept Invitation</a></p>'
        f"<p>If the link doesn't work, paste this into your browser:<br>{url}</p>"
        f"<p>This invitation will expire in {ttl_days} days.</p>"
    )
    return EmailMessage(to=to, subject="Project Collaboration Invitation", html=body)


def project_update_email(
    to: str,
    project_title: str,
    action: str,
    details: str,
    changed_by: str,
    changed_by_email: str,
    dashboard_url: str,
) -> EmailMessage:
    body = (
        "<h1>Project Update Notification</h1>"
        f"<p><strong>Project:</strong> {html.escape(project_title)}</p>"
        f"<p><strong>Action:</strong> {html.escape(action)}</p>"
        f"<p><strong>Details:</strong> {html.escape(details)}</p>"
        f"<p><strong>Changed by:</strong> {html.escape(changed_by)} ({html.escape(changed_by_email)})</p>"
        f'<p><a href="{html.escape(dashboard_url, quote=True)}">View Project</a></p>'
    )
    return EmailMessage(to=to, subject=f"Project Update: {project_title}", html=body)


def access_request_email(
    to: str,
    project_title: str,
    requester_name: str,
    requester_email: str,
    action: str,
    project_url: str,
) -> EmailMessage:
    body = (
        "<h2>Access Request</h2>"
        f"<p><strong>{html.escape(requester_name)}</strong> ({html.escape(requester_email)}) "
        f"is requesting editor access to <strong>{html.escape(project_title)}</strong>.</p>"
        f"<p>Requested action: {html.escape(action)}</p>"
        "<p>Open the Collaborators section and change their permission level "
        'from "View Only" to "Can Edit" or "Admin".</p>'
        f'<p><a href="{html.escape(project_url, quote=True)}">Manage Project</a></p>'
    )
    return EmailMessage(to=to, subject=f"Access Request: {project_title}", html=body)
