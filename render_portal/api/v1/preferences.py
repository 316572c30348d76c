from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from render_portal.api.v1.errors import as_http_error
from render_portal.core.auth import Identity, get_identity
from render_portal.db.registry import get_db
from render_portal.services.user_settings import UserSettingsService

router = APIRouter(prefix="/settings", tags=["Settings"])


class DueDateSettingIn(BaseModel):
    value: int
    unit: str = "days"


def _settings() -> UserSettingsService:
    return UserSettingsService(get_db())


@router.get("/due-date")
def get_due_date_setting(identity: Identity = Depends(get_identity)):
    try:
        return _settings().default_due_date(identity)
    except Exception as exc:
        raise as_http_error(exc)


@router.put("/due-date")
def save_due_date_setting(payload: DueDateSettingIn, identity: Identity = Depends(get_identity)):
    try:
        return _settings().set_default_due_date(identity, payload.value, payload.unit)
    except Exception as exc:
        raise as_http_error(exc)
