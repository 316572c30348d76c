from fastapi import FastAPI
from fastapi.testclient import TestClient

from render_portal.api.v1 import boards, collaboration, notifications, preferences, projects
from render_portal.db.client import InMemoryDB
from render_portal.db.registry import set_db
from render_portal.middleware.trace import TraceMiddleware
from render_portal.services.email import OutboxEmailSender, set_email_sender
from support import project_payload


def _headers(user_id: str, email: str, name: str = ""):
    headers = {"X-Render-User-Id": user_id, "X-Render-User-Email": email}
    if name:
        headers["X-Render-User-Name"] = name
    return headers


OWNER_H = _headers("owner-1", "owner@renderstudio.com", "Olive Owner")
USER_H = _headers("user-1", "user@renderstudio.com", "Uma User")
OTHER_H = _headers("other-1", "other@elsewhere.org")


def _client(monkeypatch):
    monkeypatch.setenv("AUTH_HEADER_MODE", "1")
    monkeypatch.setenv("APP_URL", "https://portal.test")
    outbox = OutboxEmailSender()
    set_db(InMemoryDB())
    set_email_sender(outbox)
    app = FastAPI()
    app.add_middleware(TraceMiddleware)
    for module in (projects, collaboration, notifications, boards, preferences):
        app.include_router(module.router, prefix="/api/v1")
    return TestClient(app), outbox


def test_invite_accept_promote_scenario(monkeypatch):
    client, outbox = _client(monkeypatch)

    # 1) owner creates a project
    r = client.post("/api/v1/projects", json=project_payload(), headers=OWNER_H)
    assert r.status_code == 201
    pid = r.json()["id"]

    # 2) owner invites U as editor
    r = client.post(
        f"/api/v1/projects/{pid}/invitations",
        json={"email": "user@renderstudio.com", "permission_level": "edit"},
        headers=OWNER_H,
    )
    assert r.status_code == 201
    body = r.json()
    assert body["email_sent"] is True
    assert body["invitation_url"].startswith("https://portal.test/project/invite/")
    token = body["invitation"]["token"]
    assert outbox.sent[-1].to == "user@renderstudio.com"

    r = client.get(f"/api/v1/invitations/{token}")
    assert r.status_code == 200
    assert r.json()["permission_level"] == "edit"

    # 3) a different identity cannot accept it
    r = client.post(f"/api/v1/invitations/{token}/accept", headers=OTHER_H)
    assert r.status_code == 403

    # 4) U accepts
    r = client.post(f"/api/v1/invitations/{token}/accept", headers=USER_H)
    assert r.status_code == 200
    assert r.json()["collaborator"]["permission_level"] == "edit"

    r = client.post(f"/api/v1/invitations/{token}/accept", headers=USER_H)
    assert r.status_code == 200
    assert r.json()["already_accepted"] is True

    # 5) U can edit but not manage
    r = client.patch(f"/api/v1/projects/{pid}", json={"title": "Summer Patio Set"}, headers=USER_H)
    assert r.status_code == 200
    assert r.json()["project"]["title"] == "Summer Patio Set"

    r = client.post(
        f"/api/v1/projects/{pid}/invitations",
        json={"email": "third@renderstudio.com", "permission_level": "view"},
        headers=USER_H,
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "Access denied"

    r = client.patch(
        f"/api/v1/projects/{pid}/collaborators/user-1",
        json={"permission_level": "admin"},
        headers=USER_H,
    )
    assert r.status_code == 403

    # 6) owner promotes U to admin; now U can manage
    r = client.patch(
        f"/api/v1/projects/{pid}/collaborators/user-1",
        json={"permission_level": "admin"},
        headers=OWNER_H,
    )
    assert r.status_code == 200

    r = client.post(
        f"/api/v1/projects/{pid}/invitations",
        json={"email": "third@renderstudio.com", "permission_level": "view"},
        headers=USER_H,
    )
    assert r.status_code == 201

    r = client.get(f"/api/v1/projects/{pid}/invitations", headers=USER_H)
    assert [i["email"] for i in r.json()["items"]] == ["third@renderstudio.com"]

    r = client.get(f"/api/v1/projects/{pid}/collaboration-stats", headers=USER_H)
    assert r.json()["total_collaborators"] == 1
    assert r.json()["pending_invitations"] == 1

    # 7) only the owner deletes
    r = client.delete(f"/api/v1/projects/{pid}", headers=USER_H)
    assert r.status_code == 403
    r = client.delete(f"/api/v1/projects/{pid}", headers=OWNER_H)
    assert r.status_code == 200
    r = client.get(f"/api/v1/projects/{pid}", headers=OWNER_H)
    assert r.status_code == 403


def test_update_notifies_other_collaborators(monkeypatch):
    client, outbox = _client(monkeypatch)
    pid = client.post("/api/v1/projects", json=project_payload(), headers=OWNER_H).json()["id"]
    token = client.post(
        f"/api/v1/projects/{pid}/invitations",
        json={"email": "user@renderstudio.com", "permission_level": "view"},
        headers=OWNER_H,
    ).json()["invitation"]["token"]
    client.post(f"/api/v1/invitations/{token}/accept", headers=USER_H)
    outbox.sent.clear()

    r = client.patch(f"/api/v1/projects/{pid}", json={"retailer": "Big Box"}, headers=OWNER_H)
    assert r.status_code == 200
    assert r.json()["notifications"] == {"successful": ["user@renderstudio.com"], "failed": []}
    assert outbox.sent[0].subject == "Project Update: Spring Patio Set"

    outbox.fail_for.add("user@renderstudio.com")
    r = client.post(f"/api/v1/projects/{pid}/notify", json={"action": "Parts revised"}, headers=OWNER_H)
    assert r.status_code == 200
    assert r.json()["successful"] == []
    assert r.json()["failed"][0]["email"] == "user@renderstudio.com"

    r = client.post(f"/api/v1/projects/{pid}/request-access", json={}, headers=USER_H)
    assert r.status_code == 200
    assert r.json()["successful"] == ["owner@renderstudio.com"]


def test_status_codes(monkeypatch):
    client, _ = _client(monkeypatch)
    pid = client.post("/api/v1/projects", json=project_payload(), headers=OWNER_H).json()["id"]

    assert client.get(f"/api/v1/projects/{pid}").status_code == 401
    assert client.get(f"/api/v1/projects/{pid}", headers=OTHER_H).status_code == 403
    assert client.get("/api/v1/projects/missing", headers=OTHER_H).json()["detail"] == "Access denied"

    r = client.post(
        f"/api/v1/projects/{pid}/invitations",
        json={"email": "not-an-email", "permission_level": "view"},
        headers=OWNER_H,
    )
    assert r.status_code == 400

    r = client.post(
        f"/api/v1/projects/{pid}/invitations",
        json={"email": "ok@renderstudio.com", "permission_level": "superuser"},
        headers=OWNER_H,
    )
    assert r.status_code == 400

    assert client.get("/api/v1/invitations/unknown-token").status_code == 404
    assert client.post("/api/v1/invitations/unknown-token/accept", headers=USER_H).status_code == 404

    r = client.post("/api/v1/projects", json={"title": "x", "retailer": "y", "items": []}, headers=OWNER_H)
    assert r.status_code == 422


def test_board_round_trip_and_history(monkeypatch):
    client, _ = _client(monkeypatch)
    pid = client.post("/api/v1/projects", json=project_payload(), headers=OWNER_H).json()["id"]

    r = client.get(f"/api/v1/projects/{pid}/board", headers=OWNER_H)
    assert r.status_code == 200
    assert r.json()["board_snapshot"] == {}
    assert r.headers["X-Trace-Id"]

    r = client.put(f"/api/v1/projects/{pid}/board", json={"board_snapshot": {"elements": []}}, headers=OWNER_H)
    assert r.status_code == 200

    r = client.put(f"/api/v1/projects/{pid}/board", json={"board_snapshot": [1, 2]}, headers=OWNER_H)
    assert r.status_code == 422

    client.patch(f"/api/v1/projects/{pid}", json={"title": "Renamed"}, headers=OWNER_H)
    history = client.get(f"/api/v1/projects/{pid}/history", headers=OWNER_H).json()["items"]
    assert history[0]["action"] == "project_updated"

    r = client.post(f"/api/v1/projects/{pid}/restore", json={"log_id": history[0]["id"]}, headers=OWNER_H)
    assert r.status_code == 200
    assert r.json()["project"]["title"] == "Spring Patio Set"

    r = client.post(f"/api/v1/projects/{pid}/restore", json={"log_id": "missing"}, headers=OWNER_H)
    assert r.status_code == 404


def test_due_date_preference_round_trip(monkeypatch):
    client, _ = _client(monkeypatch)

    r = client.get("/api/v1/settings/due-date", headers=OWNER_H)
    assert r.json() == {"value": 30, "unit": "days"}

    r = client.put("/api/v1/settings/due-date", json={"value": 3, "unit": "weeks"}, headers=OWNER_H)
    assert r.status_code == 200
    assert r.json() == {"value": 3, "unit": "weeks"}

    r = client.put("/api/v1/settings/due-date", json={"value": 3, "unit": "years"}, headers=OWNER_H)
    assert r.status_code == 400
    assert client.get("/api/v1/settings/due-date").status_code == 401

    payload = project_payload()
    payload["due_date"] = "2026-02-30"
    assert client.post("/api/v1/projects", json=payload, headers=OWNER_H).status_code == 422
