import logging
import uuid
from typing import Any, Dict, List, Optional

from render_portal.db.client import DBClient
from render_portal.services.date_utils import utc_now_iso

logger = logging.getLogger(__name__)


def create_supabase_client(url: str, key: str, mode: str = "rest", timeout_s: float = 25.0) -> Any:
    if mode == "sdk":
        from supabase import create_client as _create_client

        return _create_client(url, key)
    from render_portal.db.supabase_rest_client import create_client as _create_client

    return _create_client(url, key, timeout_s=timeout_s)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _first(rows: Any) -> Optional[Dict[str, Any]]:
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None


class SupabaseDB(DBClient):
    """
    Hosted Postgres through PostgREST. Tables follow ``postgres_db.SCHEMA_SQL``.
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        *,
        client_mode: str = "rest",
        timeout_s: float = 25.0,
        client: Any = None,
    ) -> None:
        if client is None and not (url and service_key):
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for DB_BACKEND=supabase")
        self.client: Any = client or create_supabase_client(url, service_key, client_mode, timeout_s)

    # user profiles
    def upsert_user_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: v for k, v in profile.items() if v is not None}
        payload["updated_at"] = utc_now_iso()
        res = self.client.table("user_profiles").upsert(payload, on_conflict="user_id").execute()
        return _first(res.data) or payload

    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("user_profiles").select("*").eq("user_id", user_id).limit(1).execute()
        return _first(res.data)

    # projects
    def insert_project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("projects").insert(row).execute()
        return _first(res.data) or row

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        if not _is_uuid(project_id):
            return None
        res = self.client.table("projects").select("*").eq("id", project_id).limit(1).execute()
        return _first(res.data)

    def list_owned_projects(self, user_id: str) -> List[Dict[str, Any]]:
        res = self.client.table("projects").select("*").eq("user_id", user_id).execute()
        return res.data or []

    def list_shared_projects(self, user_id: str) -> List[Dict[str, Any]]:
        memberships = (
            self.client.table("project_collaborators")
            .select("project_id,permission_level")
            .eq("user_id", user_id)
            .execute()
        ).data or []
        if not memberships:
            return []
        levels = {str(m["project_id"]): m["permission_level"] for m in memberships}
        projects = self.client.table("projects").select("*").in_("id", list(levels)).execute().data or []
        for project in projects:
            project["permission_level"] = levels.get(str(project["id"]))
        return projects

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        payload = {**fields, "updated_at": utc_now_iso()}
        res = self.client.table("projects").update(payload).eq("id", project_id).execute()
        row = _first(res.data)
        if row is None:
            raise KeyError(project_id)
        return row

    def delete_project(self, project_id: str) -> None:
        # Dependent rows go through ON DELETE CASCADE.
        self.client.table("projects").delete().eq("id", project_id).execute()

    # collaborators
    def get_collaborator(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table("project_collaborators")
            .select("*")
            .eq("project_id", project_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return _first(res.data)

    def list_collaborators(self, project_id: str) -> List[Dict[str, Any]]:
        rows = (
            self.client.table("project_collaborators")
            .select("*")
            .eq("project_id", project_id)
            .order("joined_at", desc=True)
            .execute()
        ).data or []
        if not rows:
            return []
        user_ids = [r["user_id"] for r in rows]
        profiles = self.client.table("user_profiles").select("*").in_("user_id", user_ids).execute().data or []
        by_id = {p["user_id"]: p for p in profiles}
        for row in rows:
            profile = by_id.get(row["user_id"], {})
            row["user_email"] = profile.get("email")
            row["user_full_name"] = profile.get("full_name")
        return rows

    def upsert_collaborator(self, row: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.get_collaborator(row["project_id"], row["user_id"])
        if existing:
            # joined_at and invited_by stay as first written.
            updated = self.update_collaborator(
                row["project_id"], row["user_id"], {"permission_level": row["permission_level"]}
            )
            return updated or existing
        res = self.client.table("project_collaborators").upsert(row, on_conflict="project_id,user_id").execute()
        return _first(res.data) or row

    def update_collaborator(self, project_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = {**fields, "updated_at": utc_now_iso()}
        res = (
            self.client.table("project_collaborators")
            .update(payload)
            .eq("project_id", project_id)
            .eq("user_id", user_id)
            .execute()
        )
        return _first(res.data)

    def delete_collaborator(self, project_id: str, user_id: str) -> bool:
        res = (
            self.client.table("project_collaborators")
            .delete()
            .eq("project_id", project_id)
            .eq("user_id", user_id)
            .execute()
        )
        return bool(res.data)

    # invitations
    def insert_invitation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("project_invitations").insert(row).execute()
        return _first(res.data) or row

    def get_invitation(self, token: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("project_invitations").select("*").eq("token", token).limit(1).execute()
        return _first(res.data)

    def get_invitation_by_id(self, invitation_id: str) -> Optional[Dict[str, Any]]:
        if not _is_uuid(invitation_id):
            return None
        res = self.client.table("project_invitations").select("*").eq("id", invitation_id).limit(1).execute()
        return _first(res.data)

    def find_pending_invitation(self, project_id: str, email: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table("project_invitations")
            .select("*")
            .eq("project_id", project_id)
            .eq("email", email)
            .eq("status", "pending")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _first(res.data)

    def list_invitations(self, project_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.client.table("project_invitations").select("*").eq("project_id", project_id)
        if status:
            query = query.eq("status", status)
        return query.order("created_at", desc=True).execute().data or []

    def update_invitation(self, invitation_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("project_invitations").update(fields).eq("id", invitation_id).execute()
        row = _first(res.data)
        if row is None:
            raise KeyError(invitation_id)
        return row

    def delete_invitation(self, invitation_id: str) -> bool:
        res = self.client.table("project_invitations").delete().eq("id", invitation_id).execute()
        return bool(res.data)

    # boards
    def get_board(self, project_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("project_boards").select("*").eq("project_id", project_id).limit(1).execute()
        return _first(res.data)

    def upsert_board(self, project_id: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"project_id": project_id, "board_snapshot": snapshot, "updated_at": utc_now_iso()}
        res = self.client.table("project_boards").upsert(payload, on_conflict="project_id").execute()
        return _first(res.data) or payload

    # activity log
    def append_project_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("project_logs").insert(row).execute()
        return _first(res.data) or row

    def list_project_logs(self, project_id: str) -> List[Dict[str, Any]]:
        res = (
            self.client.table("project_logs")
            .select("*")
            .eq("project_id", project_id)
            .order("timestamp", desc=True)
            .execute()
        )
        return res.data or []

    def get_project_log(self, project_id: str, log_id: str) -> Optional[Dict[str, Any]]:
        if not (_is_uuid(project_id) and _is_uuid(log_id)):
            return None
        res = (
            self.client.table("project_logs")
            .select("*")
            .eq("project_id", project_id)
            .eq("id", log_id)
            .limit(1)
            .execute()
        )
        return _first(res.data)
