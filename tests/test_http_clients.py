import json

import httpx
import pytest

from render_portal.core.errors import DeliveryFailed
from render_portal.db.supabase_db import SupabaseDB
from render_portal.db.supabase_rest_client import PostgrestError, SupabaseRestClient
from render_portal.services.email import EmailMessage, ResendEmailSender


def test_rest_client_builds_postgrest_requests():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=[{"id": "p1", "title": "Patio"}])
        return httpx.Response(201, json=[json.loads(request.content)])

    client = SupabaseRestClient("https://db.example.com/", "service-key", transport=httpx.MockTransport(handler))
    rows = client.table("projects").select("*").eq("id", "p1").order("created_at", desc=True).limit(1).execute().data
    assert rows == [{"id": "p1", "title": "Patio"}]

    get = seen[0]
    assert get.url.path == "/rest/v1/projects"
    assert get.url.params["id"] == "eq.p1"
    assert get.url.params["order"] == "created_at.desc"
    assert get.url.params["limit"] == "1"
    assert get.headers["apikey"] == "service-key"
    assert get.headers["Authorization"] == "Bearer service-key"

    client.table("project_collaborators").upsert({"project_id": "p1"}, on_conflict="project_id,user_id").execute()
    post = seen[1]
    assert post.method == "POST"
    assert post.url.params["on_conflict"] == "project_id,user_id"
    assert "resolution=merge-duplicates" in post.headers["Prefer"]
    client.close()


def test_rest_client_raises_postgrest_errors():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(401, json={"message": "JWT expired", "code": "PGRST301"})
    )
    client = SupabaseRestClient("https://db.example.com", "k", transport=transport)
    with pytest.raises(PostgrestError) as exc:
        client.table("projects").select("*").execute()
    assert exc.value.status_code == 401
    assert exc.value.code == "PGRST301"
    assert "JWT expired" in str(exc.value)


def test_supabase_db_skips_lookup_for_non_uuid_ids():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    rest = SupabaseRestClient("https://db.example.com", "k", transport=httpx.MockTransport(handler))
    assert SupabaseDB("", "", client=rest).get_project("not-a-uuid") is None


def test_supabase_db_reads_collaborator_level():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["project_id"] == "eq.p1"
        assert request.url.params["user_id"] == "eq.u1"
        return httpx.Response(200, json=[{"project_id": "p1", "user_id": "u1", "permission_level": "edit"}])

    rest = SupabaseRestClient("https://db.example.com", "k", transport=httpx.MockTransport(handler))
    db = SupabaseDB("", "", client=rest)
    assert db.get_collaborator("p1", "u1")["permission_level"] == "edit"


async def test_resend_sender_posts_message():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    sender = ResendEmailSender("re_key", "Portal <noreply@renderstudio.com>", transport=httpx.MockTransport(handler))
    message_id = await sender.send(EmailMessage(to="a@renderstudio.com", subject="Hi", html="<p>Hi</p>"))

    assert message_id == "email_123"
    assert captured["auth"] == "Bearer re_key"
    assert captured["body"]["to"] == ["a@renderstudio.com"]
    assert captured["body"]["from"] == "Portal <noreply@renderstudio.com>"


async def test_resend_sender_wraps_provider_errors():
    transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "invalid from"}))
    sender = ResendEmailSender("re_key", "bad", transport=transport)
    with pytest.raises(DeliveryFailed):
        await sender.send(EmailMessage(to="a@renderstudio.com", subject="Hi", html="x"))
