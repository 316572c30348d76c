from datetime import timedelta

import pytest

from render_portal.core.auth import Identity
from render_portal.core.errors import (
    AccessDenied,
    AuthenticationRequired,
    EmailMismatch,
    InvitationInvalid,
    ValidationFailed,
)
from render_portal.services.date_utils import parse_timestamp, utc_now
from render_portal.services.invitations import AcceptError, InvitationService
from support import ADMIN, EDITOR, OUTSIDER, OWNER, VIEWER, add_member

INVITEE = Identity(user_id="invitee-1", email="newbie@renderstudio.com", full_name="Nia Newbie")


def _service(db, outbox, clock=utc_now):
    return InvitationService(db, outbox, app_url="https://portal.test/", ttl_days=7, clock=clock)


async def test_issue_sends_link_and_persists(db, outbox, project):
    issued = await _service(db, outbox).issue(OWNER, project["id"], "Newbie@RenderStudio.com", "edit")

    inv = issued.invitation
    assert inv["status"] == "pending"
    assert inv["email"] == "newbie@renderstudio.com"
    assert inv["permission_level"] == "edit"
    assert len(inv["token"]) == 64
    assert issued.invitation_url == f"https://portal.test/project/invite/{inv['token']}"
    assert issued.email_sent is True

    expires = parse_timestamp(inv["expires_at"])
    assert timedelta(days=6, hours=23) < expires - utc_now() <= timedelta(days=7)

    assert len(outbox.sent) == 1
    assert outbox.sent[0].to == "newbie@renderstudio.com"
    assert inv["token"] in outbox.sent[0].html


async def test_issue_requires_admin(db, outbox, project):
    pid = project["id"]
    add_member(db, pid, EDITOR, "edit")
    add_member(db, pid, ADMIN, "admin")
    service = _service(db, outbox)

    with pytest.raises(AccessDenied):
        await service.issue(EDITOR, pid, "x@renderstudio.com", "view")
    with pytest.raises(AccessDenied):
        await service.issue(OUTSIDER, pid, "x@renderstudio.com", "view")
    with pytest.raises(AuthenticationRequired):
        await service.issue(None, pid, "x@renderstudio.com", "view")

    issued = await service.issue(ADMIN, pid, "x@renderstudio.com", "view")
    assert issued.invitation["invited_by"] == ADMIN.user_id


async def test_issue_validation_has_no_effect(db, outbox, project):
    service = _service(db, outbox)
    for email, level in [("not-an-email", "view"), ("", "view"), ("ok@renderstudio.com", "Admin"), ("ok@renderstudio.com", None)]:
        with pytest.raises(ValidationFailed):
            await service.issue(OWNER, project["id"], email, level)
    assert db.invitations == {}
    assert outbox.sent == []


async def test_issue_rejects_existing_members(db, outbox, project):
    add_member(db, project["id"], VIEWER, "view")
    service = _service(db, outbox)
    with pytest.raises(ValidationFailed):
        await service.issue(OWNER, project["id"], VIEWER.email.upper(), "edit")
    with pytest.raises(ValidationFailed):
        await service.issue(OWNER, project["id"], OWNER.email, "edit")


async def test_issue_reuses_pending_invitation(db, outbox, project):
    service = _service(db, outbox)
    first = await service.issue(OWNER, project["id"], INVITEE.email, "view")
    second = await service.issue(OWNER, project["id"], INVITEE.email, "edit")

    assert second.reused is True
    assert second.invitation["token"] == first.invitation["token"]
    assert second.invitation["permission_level"] == "edit"
    assert len(db.invitations) == 1
    assert len(outbox.sent) == 2


async def test_reissue_restarts_expiry_window(db, outbox, project):
    start = utc_now()
    first = await _service(db, outbox, clock=lambda: start).issue(OWNER, project["id"], INVITEE.email, "view")
    later = _service(db, outbox, clock=lambda: start + timedelta(days=5))
    second = await later.issue(OWNER, project["id"], INVITEE.email, "view")

    assert second.invitation["token"] == first.invitation["token"]
    expires = parse_timestamp(second.invitation["expires_at"])
    assert expires == start + timedelta(days=12)
    assert later.accept(INVITEE, first.invitation["token"]).ok is True


async def test_issue_survives_email_failure(db, outbox, project):
    outbox.fail_for.add(INVITEE.email)
    issued = await _service(db, outbox).issue(OWNER, project["id"], INVITEE.email, "view")

    assert issued.email_sent is False
    assert "mailbox unavailable" in issued.email_error
    assert db.get_invitation(issued.invitation["token"])["status"] == "pending"


async def test_accept_creates_collaborator(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "edit")

    result = service.accept(INVITEE, issued.invitation["token"])
    assert result.ok is True
    assert result.project_id == project["id"]
    assert result.collaborator["permission_level"] == "edit"

    inv = db.get_invitation(issued.invitation["token"])
    assert inv["status"] == "accepted"
    assert inv["accepted_by"] == INVITEE.user_id
    assert inv["accepted_at"]
    assert db.get_user_profile(INVITEE.user_id)["email"] == INVITEE.email


async def test_accept_is_idempotent_for_same_identity(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "view")
    token = issued.invitation["token"]

    assert service.accept(INVITEE, token).ok is True
    again = service.accept(INVITEE, token)
    assert again.ok is True
    assert again.already_accepted is True
    assert len([k for k in db.collaborators if k[0] == project["id"]]) == 1


async def test_accept_rejects_mismatched_email(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "edit")

    result = service.accept(OUTSIDER, issued.invitation["token"])
    assert result.ok is False
    assert result.error is AcceptError.EMAIL_MISMATCH
    with pytest.raises(EmailMismatch):
        result.raise_for_error()
    assert db.get_collaborator(project["id"], OUTSIDER.user_id) is None
    assert db.get_invitation(issued.invitation["token"])["status"] == "pending"


async def test_accept_email_comparison_ignores_case(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "view")
    shouting = Identity(user_id=INVITEE.user_id, email="NEWBIE@RenderStudio.COM")
    assert service.accept(shouting, issued.invitation["token"]).ok is True


async def test_accept_rejects_expired_token(db, outbox, project):
    issued = await _service(db, outbox).issue(OWNER, project["id"], INVITEE.email, "edit")
    later = _service(db, outbox, clock=lambda: utc_now() + timedelta(days=8))

    result = later.accept(INVITEE, issued.invitation["token"])
    assert result.error is AcceptError.INVALID_OR_EXPIRED
    assert db.get_invitation(issued.invitation["token"])["status"] == "expired"
    assert db.get_collaborator(project["id"], INVITEE.user_id) is None


async def test_accept_rejects_token_consumed_by_someone_else(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "view")
    token = issued.invitation["token"]
    assert service.accept(INVITEE, token).ok is True

    twin = Identity(user_id="invitee-2", email=INVITEE.email)
    assert service.accept(twin, token).error is AcceptError.INVALID_OR_EXPIRED


def test_accept_unknown_token_and_missing_identity(db, outbox):
    service = _service(db, outbox)
    result = service.accept(INVITEE, "deadbeef")
    assert result.error is AcceptError.INVALID_OR_EXPIRED
    with pytest.raises(InvitationInvalid):
        result.raise_for_error()
    with pytest.raises(AuthenticationRequired):
        service.accept(None, "deadbeef")


async def test_details_list_and_cancel(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "view")
    token = issued.invitation["token"]

    details = service.details(token)
    assert details["project_title"] == project["title"]
    assert details["email"] == INVITEE.email

    pending = service.list_pending(OWNER, project["id"])
    assert [p["token"] for p in pending] == [token]

    add_member(db, project["id"], VIEWER, "view")
    with pytest.raises(AccessDenied):
        service.cancel(VIEWER, project["id"], issued.invitation["id"])

    service.cancel(OWNER, project["id"], issued.invitation["id"])
    assert service.list_pending(OWNER, project["id"]) == []
    with pytest.raises(InvitationInvalid):
        service.details(token)
    with pytest.raises(InvitationInvalid):
        service.cancel(OWNER, project["id"], issued.invitation["id"])


async def test_issue_replaces_expired_pending_invitation(db, outbox, project):
    issued = await _service(db, outbox).issue(OWNER, project["id"], INVITEE.email, "view")
    later = _service(db, outbox, clock=lambda: utc_now() + timedelta(days=8))

    fresh = await later.issue(OWNER, project["id"], INVITEE.email, "view")
    assert fresh.reused is False
    assert fresh.invitation["token"] != issued.invitation["token"]
    assert db.get_invitation(issued.invitation["token"])["status"] == "expired"


def test_parse_timestamp_accepts_trimmed_fractions():
    parsed = parse_timestamp("2026-10-26T09:14:03.12345+00:00")
    assert parsed.microsecond == 123450
    assert parse_timestamp("2026-10-26T09:14:03.1Z").microsecond == 100000
    assert parse_timestamp("2026-10-26T09:14:03").tzinfo is not None


async def test_accept_with_postgrest_style_expiry(db, outbox, project):
    service = _service(db, outbox)
    issued = await service.issue(OWNER, project["id"], INVITEE.email, "view")
    db.update_invitation(str(issued.invitation["id"]), {"expires_at": "2099-10-26T09:14:03.12345+00:00"})

    assert service.details(issued.invitation["token"])["permission_level"] == "view"
    assert service.accept(INVITEE, issued.invitation["token"]).ok is True
