import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    app_env: str
    app_url: str
    db_backend: str
    supabase_url: str
    supabase_service_role_key: str
    supabase_jwt_secret: str
    supabase_db_url: str
    supabase_client_mode: str
    supabase_timeout_s: float
    resend_api_key: str
    email_from: str
    email_timeout_s: float
    invitation_ttl_days: int
    auth_header_mode: bool
    cors_origins: Tuple[str, ...]


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        app_env=os.getenv("APP_ENV", "dev"),
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        db_backend=(os.getenv("DB_BACKEND") or "memory").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET", ""),
        supabase_db_url=os.getenv("SUPABASE_DB_URL", ""),
        supabase_client_mode=(os.getenv("SUPABASE_CLIENT_MODE") or "rest").strip().lower(),
        supabase_timeout_s=float(os.getenv("SUPABASE_TIMEOUT_S", "25")),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        email_from=os.getenv("EMAIL_FROM", "Core Render Portal <noreply@renderportal.swftstudios.com>"),
        email_timeout_s=float(os.getenv("EMAIL_TIMEOUT_S", "10")),
        invitation_ttl_days=int(os.getenv("INVITATION_TTL_DAYS", "7")),
        auth_header_mode=os.getenv("AUTH_HEADER_MODE", "0") == "1",
        cors_origins=_csv(os.getenv("CORS_ORIGINS", "*")),
    )
