import copy
import uuid
from typing import Any, Dict, List, Optional

from render_portal.services.date_utils import utc_now_iso


class DBClient:
    """
    Storage contract shared by the in-memory, Supabase and Postgres backends.

    Rows are plain dicts. Authorization is not enforced here; callers go
    through AccessGate first.
    """

    # user profiles
    def upsert_user_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    # projects
    def insert_project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_owned_projects(self, user_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def list_shared_projects(self, user_id: str) -> List[Dict[str, Any]]:
        """Projects the user collaborates on, each with its ``permission_level``."""
        raise NotImplementedError

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete_project(self, project_id: str) -> None:
        raise NotImplementedError

    # collaborators
    def get_collaborator(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_collaborators(self, project_id: str) -> List[Dict[str, Any]]:
        """Collaborator rows joined with ``user_email`` and ``user_full_name``."""
        raise NotImplementedError

    def upsert_collaborator(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update_collaborator(self, project_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def delete_collaborator(self, project_id: str, user_id: str) -> bool:
        raise NotImplementedError

    # invitations
    def insert_invitation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_invitation(self, token: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get_invitation_by_id(self, invitation_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def find_pending_invitation(self, project_id: str, email: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_invitations(self, project_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def update_invitation(self, invitation_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete_invitation(self, invitation_id: str) -> bool:
        raise NotImplementedError

    def materialize_acceptance(
        self,
        invitation_id: str,
        collaborator: Dict[str, Any],
        accepted_fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Upsert the collaborator, then mark the invitation accepted.

        The collaborator write comes first so a retry after a partial failure
        converges on the same state. Backends with transactions override this.
        """
        row = self.upsert_collaborator(collaborator)
        self.update_invitation(invitation_id, accepted_fields)
        return row

    # boards
    def get_board(self, project_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def upsert_board(self, project_id: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    # activity log
    def append_project_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list_project_logs(self, project_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get_project_log(self, project_id: str, log_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryDB(DBClient):
    def __init__(self) -> None:
        self.user_profiles: Dict[str, Dict[str, Any]] = {}
        self.projects: Dict[str, Dict[str, Any]] = {}
        # key = (project_id, user_id)
        self.collaborators: Dict[tuple, Dict[str, Any]] = {}
        self.invitations: Dict[str, Dict[str, Any]] = {}
        self.boards: Dict[str, Dict[str, Any]] = {}
        self.project_logs: List[Dict[str, Any]] = []

    @staticmethod
    def _copy(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(row) if row is not None else None

    def upsert_user_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.user_profiles.get(profile["user_id"], {})
        merged = {**existing, **{k: v for k, v in profile.items() if v is not None}}
        merged.setdefault("created_at", utc_now_iso())
        merged["updated_at"] = utc_now_iso()
        self.user_profiles[profile["user_id"]] = merged
        return self._copy(merged)

    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._copy(self.user_profiles.get(user_id))

    def insert_project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        now = utc_now_iso()
        record = {"id": row.get("id") or _new_id(), "created_at": now, "updated_at": now, **row}
        self.projects[record["id"]] = copy.deepcopy(record)
        return self._copy(record)

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._copy(self.projects.get(project_id))

    def list_owned_projects(self, user_id: str) -> List[Dict[str, Any]]:
        return [self._copy(p) for p in self.projects.values() if p.get("user_id") == user_id]

    def list_shared_projects(self, user_id: str) -> List[Dict[str, Any]]:
        rows = []
        for (project_id, member_id), collab in self.collaborators.items():
            if member_id != user_id or project_id not in self.projects:
                continue
            row = self._copy(self.projects[project_id])
            row["permission_level"] = collab["permission_level"]
            rows.append(row)
        return rows

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        project = self.projects.get(project_id)
        if project is None:
            raise KeyError(project_id)
        project.update(copy.deepcopy(fields))
        project["updated_at"] = utc_now_iso()
        return self._copy(project)

    def delete_project(self, project_id: str) -> None:
        self.projects.pop(project_id, None)
        self.boards.pop(project_id, None)
        for key in [k for k in self.collaborators if k[0] == project_id]:
            del self.collaborators[key]
        for invitation_id in [i for i, inv in self.invitations.items() if inv["project_id"] == project_id]:
            del self.invitations[invitation_id]
        self.project_logs = [log for log in self.project_logs if log["project_id"] != project_id]

    def get_collaborator(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self._copy(self.collaborators.get((project_id, user_id)))

    def list_collaborators(self, project_id: str) -> List[Dict[str, Any]]:
        rows = []
        for (pid, user_id), collab in self.collaborators.items():
            if pid != project_id:
                continue
            profile = self.user_profiles.get(user_id, {})
            row = self._copy(collab)
            row["user_email"] = profile.get("email")
            row["user_full_name"] = profile.get("full_name")
            rows.append(row)
        rows.sort(key=lambda r: r.get("joined_at") or "", reverse=True)
        return rows

    def upsert_collaborator(self, row: Dict[str, Any]) -> Dict[str, Any]:
        key = (row["project_id"], row["user_id"])
        now = utc_now_iso()
        existing = self.collaborators.get(key)
        if existing is None:
            existing = {"id": _new_id(), "joined_at": now, "created_at": now, **row}
            self.collaborators[key] = existing
        else:
            existing["permission_level"] = row["permission_level"]
        existing["updated_at"] = now
        return self._copy(existing)

    def update_collaborator(self, project_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        existing = self.collaborators.get((project_id, user_id))
        if existing is None:
            return None
        existing.update(fields)
        existing["updated_at"] = utc_now_iso()
        return self._copy(existing)

    def delete_collaborator(self, project_id: str, user_id: str) -> bool:
        return self.collaborators.pop((project_id, user_id), None) is not None

    def insert_invitation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if any(inv["token"] == row["token"] for inv in self.invitations.values()):
            raise ValueError("duplicate invitation token")
        record = {"id": row.get("id") or _new_id(), "created_at": utc_now_iso(), "accepted_at": None, "accepted_by": None, **row}
        self.invitations[record["id"]] = record
        return self._copy(record)

    def get_invitation(self, token: str) -> Optional[Dict[str, Any]]:
        for inv in self.invitations.values():
            if inv["token"] == token:
                return self._copy(inv)
        return None

    def get_invitation_by_id(self, invitation_id: str) -> Optional[Dict[str, Any]]:
        return self._copy(self.invitations.get(invitation_id))

    def find_pending_invitation(self, project_id: str, email: str) -> Optional[Dict[str, Any]]:
        for inv in self.invitations.values():
            if inv["project_id"] == project_id and inv["email"] == email and inv["status"] == "pending":
                return self._copy(inv)
        return None

    def list_invitations(self, project_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = [
            self._copy(inv)
            for inv in self.invitations.values()
            if inv["project_id"] == project_id and (status is None or inv["status"] == status)
        ]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows

    def update_invitation(self, invitation_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        inv = self.invitations.get(invitation_id)
        if inv is None:
            raise KeyError(invitation_id)
        inv.update(fields)
        return self._copy(inv)

    def delete_invitation(self, invitation_id: str) -> bool:
        return self.invitations.pop(invitation_id, None) is not None

    def get_board(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._copy(self.boards.get(project_id))

    def upsert_board(self, project_id: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        now = utc_now_iso()
        board = self.boards.get(project_id)
        if board is None:
            board = {"project_id": project_id, "created_at": now}
            self.boards[project_id] = board
        board["board_snapshot"] = copy.deepcopy(snapshot)
        board["updated_at"] = now
        return self._copy(board)

    def append_project_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        record = {"id": _new_id(), "timestamp": utc_now_iso(), **row}
        self.project_logs.append(copy.deepcopy(record))
        return record

    def list_project_logs(self, project_id: str) -> List[Dict[str, Any]]:
        rows = [self._copy(log) for log in self.project_logs if log["project_id"] == project_id]
        rows.reverse()
        return rows

    def get_project_log(self, project_id: str, log_id: str) -> Optional[Dict[str, Any]]:
        for log in self.project_logs:
            if log["project_id"] == project_id and log["id"] == log_id:
                return self._copy(log)
        return None
