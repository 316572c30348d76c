from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import SimpleConnectionPool

from render_portal.db.client import DBClient

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id TEXT PRIMARY KEY,
    email TEXT,
    full_name TEXT,
    default_due_date_value INTEGER DEFAULT 30 CHECK (default_due_date_value IS NULL OR default_due_date_value BETWEEN 1 AND 99),
    default_due_date_unit TEXT DEFAULT 'days' CHECK (default_due_date_unit IS NULL OR default_due_date_unit IN ('days', 'weeks', 'months')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
ALTER TABLE user_profiles ADD COLUMN IF NOT EXISTS default_due_date_value INTEGER DEFAULT 30;
ALTER TABLE user_profiles ADD COLUMN IF NOT EXISTS default_due_date_unit TEXT DEFAULT 'days';

CREATE TABLE IF NOT EXISTS projects (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    retailer TEXT NOT NULL,
    due_date DATE,
    items JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_projects_user_id ON projects(user_id);

CREATE TABLE IF NOT EXISTS project_collaborators (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    permission_level TEXT NOT NULL DEFAULT 'view' CHECK (permission_level IN ('view', 'edit', 'admin')),
    invited_by TEXT,
    joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (project_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_project_collaborators_user_id ON project_collaborators(user_id);

CREATE TABLE IF NOT EXISTS project_invitations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    email TEXT NOT NULL,
    permission_level TEXT NOT NULL DEFAULT 'view' CHECK (permission_level IN ('view', 'edit', 'admin')),
    token TEXT NOT NULL UNIQUE,
    invited_by TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'accepted', 'expired')),
    expires_at TIMESTAMPTZ NOT NULL,
    accepted_at TIMESTAMPTZ,
    accepted_by TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_project_invitations_project_email ON project_invitations(project_id, email);

CREATE TABLE IF NOT EXISTS project_boards (
    project_id UUID PRIMARY KEY REFERENCES projects(id) ON DELETE CASCADE,
    board_snapshot JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS project_logs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    action TEXT NOT NULL,
    details JSONB NOT NULL DEFAULT '{}'::jsonb,
    timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_project_logs_project ON project_logs(project_id, timestamp DESC);
"""

_JSON_COLUMNS = {"items", "details", "board_snapshot"}


def _dumps(value: Any) -> str:
    # Log snapshots carry date and datetime values read back from Postgres.
    return json.dumps(value, default=str)


def _adapt(value: Any, column: str) -> Any:
    if column in _JSON_COLUMNS and value is not None:
        return Json(value, dumps=_dumps)
    return value


class PostgresDB(DBClient):
    def __init__(self, db_url: str) -> None:
        if not db_url:
            raise RuntimeError("SUPABASE_DB_URL is required for DB_BACKEND=postgres")
        self.db_url = db_url
        minconn = int(os.getenv("POSTGRES_POOL_MIN", "1"))
        maxconn = int(os.getenv("POSTGRES_POOL_MAX", "5"))
        self._pool = SimpleConnectionPool(minconn, maxconn, dsn=self.db_url)

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        conn = self._pool.getconn()
        try:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    yield cur
        finally:
            self._pool.putconn(conn)

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        with self._transaction() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
            return dict(row) if row else None

    def _fetchall(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._transaction() as cur:
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()]

    def _execute(self, sql: str, params: tuple = ()) -> int:
        with self._transaction() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    def ensure_schema(self) -> None:
        self._execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
        self._execute(SCHEMA_SQL)

    @staticmethod
    def _set_clause(fields: Dict[str, Any]) -> tuple:
        # Column names come from service code, never from request bodies.
        columns = list(fields)
        clause = ", ".join(f"{c}=%s" for c in columns)
        values = tuple(_adapt(fields[c], c) for c in columns)
        return clause, values

    def _insert(self, table: str, row: Dict[str, Any], cur: Any = None) -> Dict[str, Any]:
        columns = list(row)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING *"
        )
        params = tuple(_adapt(row[c], c) for c in columns)
        if cur is not None:
            cur.execute(sql, params)
            return dict(cur.fetchone())
        return self._fetchone(sql, params) or row

    # user profiles
    def upsert_user_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        return self._fetchone(
            """
            INSERT INTO user_profiles (user_id, email, full_name, default_due_date_value, default_due_date_unit)
            VALUES (%s, %s, %s, COALESCE(%s, 30), COALESCE(%s, 'days'))
            ON CONFLICT (user_id) DO UPDATE SET
                email=COALESCE(EXCLUDED.email, user_profiles.email),
                full_name=COALESCE(EXCLUDED.full_name, user_profiles.full_name),
                default_due_date_value=COALESCE(%s, user_profiles.default_due_date_value),
                default_due_date_unit=COALESCE(%s, user_profiles.default_due_date_unit),
                updated_at=NOW()
            RETURNING *
            """,
            (
                profile["user_id"],
                profile.get("email"),
                profile.get("full_name"),
                profile.get("default_due_date_value"),
                profile.get("default_due_date_unit"),
                profile.get("default_due_date_value"),
                profile.get("default_due_date_unit"),
            ),
        ) or profile

    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._fetchone("SELECT * FROM user_profiles WHERE user_id=%s", (user_id,))

    # projects
    def insert_project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("projects", row)

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._fetchone("SELECT * FROM projects WHERE id::text=%s", (project_id,))

    def list_owned_projects(self, user_id: str) -> List[Dict[str, Any]]:
        return self._fetchall("SELECT * FROM projects WHERE user_id=%s", (user_id,))

    def list_shared_projects(self, user_id: str) -> List[Dict[str, Any]]:
        return self._fetchall(
            """
            SELECT p.*, pc.permission_level
            FROM projects p
            JOIN project_collaborators pc ON pc.project_id = p.id
            WHERE pc.user_id=%s
            """,
            (user_id,),
        )

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        clause, values = self._set_clause(fields)
        row = self._fetchone(
            f"UPDATE projects SET {clause}, updated_at=NOW() WHERE id::text=%s RETURNING *",
            values + (project_id,),
        )
        if row is None:
            raise KeyError(project_id)
        return row

    def delete_project(self, project_id: str) -> None:
        self._execute("DELETE FROM projects WHERE id::text=%s", (project_id,))

    # collaborators
    def get_collaborator(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self._fetchone(
            "SELECT * FROM project_collaborators WHERE project_id::text=%s AND user_id=%s",
            (project_id, user_id),
        )

    def list_collaborators(self, project_id: str) -> List[Dict[str, Any]]:
        return self._fetchall(
            """
            SELECT pc.*, up.email AS user_email, up.full_name AS user_full_name
            FROM project_collaborators pc
            LEFT JOIN user_profiles up ON up.user_id = pc.user_id
            WHERE pc.project_id::text=%s
            ORDER BY pc.joined_at DESC
            """,
            (project_id,),
        )

    _UPSERT_COLLABORATOR = """
        INSERT INTO project_collaborators (project_id, user_id, permission_level, invited_by)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (project_id, user_id) DO UPDATE SET
            permission_level=EXCLUDED.permission_level,
            updated_at=NOW()
        RETURNING *
    """

    def upsert_collaborator(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return self._fetchone(
            self._UPSERT_COLLABORATOR,
            (row["project_id"], row["user_id"], row["permission_level"], row.get("invited_by")),
        ) or row

    def update_collaborator(self, project_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        clause, values = self._set_clause(fields)
        return self._fetchone(
            f"UPDATE project_collaborators SET {clause}, updated_at=NOW() "
            "WHERE project_id::text=%s AND user_id=%s RETURNING *",
            values + (project_id, user_id),
        )

    def delete_collaborator(self, project_id: str, user_id: str) -> bool:
        return self._execute(
            "DELETE FROM project_collaborators WHERE project_id::text=%s AND user_id=%s",
            (project_id, user_id),
        ) > 0

    # invitations
    def insert_invitation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("project_invitations", row)

    def get_invitation(self, token: str) -> Optional[Dict[str, Any]]:
        return self._fetchone("SELECT * FROM project_invitations WHERE token=%s", (token,))

    def get_invitation_by_id(self, invitation_id: str) -> Optional[Dict[str, Any]]:
        return self._fetchone("SELECT * FROM project_invitations WHERE id::text=%s", (invitation_id,))

    def find_pending_invitation(self, project_id: str, email: str) -> Optional[Dict[str, Any]]:
        return self._fetchone(
            """
            SELECT * FROM project_invitations
            WHERE project_id::text=%s AND email=%s AND status='pending'
            ORDER BY created_at DESC LIMIT 1
            """,
            (project_id, email),
        )

    def list_invitations(self, project_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status:
            return self._fetchall(
                "SELECT * FROM project_invitations WHERE project_id::text=%s AND status=%s ORDER BY created_at DESC",
                (project_id, status),
            )
        return self._fetchall(
            "SELECT * FROM project_invitations WHERE project_id::text=%s ORDER BY created_at DESC",
            (project_id,),
        )

    def update_invitation(self, invitation_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        clause, values = self._set_clause(fields)
        row = self._fetchone(
            f"UPDATE project_invitations SET {clause} WHERE id::text=%s RETURNING *",
            values + (invitation_id,),
        )
        if row is None:
            raise KeyError(invitation_id)
        return row

    def delete_invitation(self, invitation_id: str) -> bool:
        return self._execute("DELETE FROM project_invitations WHERE id::text=%s", (invitation_id,)) > 0

    def materialize_acceptance(
        self,
        invitation_id: str,
        collaborator: Dict[str, Any],
        accepted_fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        clause, values = self._set_clause(accepted_fields)
        with self._transaction() as cur:
            cur.execute(
                self._UPSERT_COLLABORATOR,
                (
                    collaborator["project_id"],
                    collaborator["user_id"],
                    collaborator["permission_level"],
                    collaborator.get("invited_by"),
                ),
            )
            row = dict(cur.fetchone())
            cur.execute(f"UPDATE project_invitations SET {clause} WHERE id::text=%s", values + (invitation_id,))
        return row

    # boards
    def get_board(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._fetchone("SELECT * FROM project_boards WHERE project_id::text=%s", (project_id,))

    def upsert_board(self, project_id: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        return self._fetchone(
            """
            INSERT INTO project_boards (project_id, board_snapshot)
            VALUES (%s, %s)
            ON CONFLICT (project_id) DO UPDATE SET
                board_snapshot=EXCLUDED.board_snapshot,
                updated_at=NOW()
            RETURNING *
            """,
            (project_id, Json(snapshot, dumps=_dumps)),
        ) or {"project_id": project_id, "board_snapshot": snapshot}

    # activity log
    def append_project_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("project_logs", row)

    def list_project_logs(self, project_id: str) -> List[Dict[str, Any]]:
        return self._fetchall(
            "SELECT * FROM project_logs WHERE project_id::text=%s ORDER BY timestamp DESC",
            (project_id,),
        )

    def get_project_log(self, project_id: str, log_id: str) -> Optional[Dict[str, Any]]:
        return self._fetchone(
            "SELECT * FROM project_logs WHERE project_id::text=%s AND id::text=%s",
            (project_id, log_id),
        )
