import logging
from typing import Optional

from render_portal.core.config import Settings
from render_portal.db.client import DBClient, InMemoryDB

logger = logging.getLogger(__name__)

_db: Optional[DBClient] = None


def set_db(db: DBClient) -> None:
    global _db
    _db = db


def get_db() -> DBClient:
    if _db is None:
        raise RuntimeError('Database not initialized')
    return _db


def build_db(settings: Settings) -> DBClient:
    backend = settings.db_backend
    if backend == "supabase":
        from render_portal.db.supabase_db import SupabaseDB

        return SupabaseDB(
            settings.supabase_url,
            settings.supabase_service_role_key,
            client_mode=settings.supabase_client_mode,
            timeout_s=settings.supabase_timeout_s,
        )
    if backend == "postgres":
        from render_portal.db.postgres_db import PostgresDB

        db = PostgresDB(settings.supabase_db_url)
        db.ensure_schema()
        return db
    if backend != "memory":
        raise RuntimeError(f"unknown DB_BACKEND: {backend}")
    logger.warning("DB_BACKEND=memory: data is not persisted")
    return InMemoryDB()
