"""
Per-user preferences kept on the user profile row.

Only the default due date lives here today: new projects created without a
``due_date`` get ``today + value unit``. Unset profiles fall back to 30 days.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import ValidationFailed
from render_portal.services.date_utils import DUE_DATE_UNITS, offset_date, utc_now

DEFAULT_DUE_DATE = {"value": 30, "unit": "days"}
MAX_DUE_DATE_VALUE = 99


def _from_profile(profile: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    profile = profile or {}
    value = profile.get("default_due_date_value") or DEFAULT_DUE_DATE["value"]
    unit = profile.get("default_due_date_unit")
    if unit not in DUE_DATE_UNITS:
        unit = DEFAULT_DUE_DATE["unit"]
    return {"value": int(value), "unit": unit}


class UserSettingsService:
    def __init__(self, db: Any, *, clock: Callable[[], Any] = utc_now) -> None:
        self.db = db
        self.clock = clock

    def default_due_date(self, identity: Optional[Identity]) -> Dict[str, Any]:
        identity = require_identity(identity)
        return _from_profile(self.db.get_user_profile(identity.user_id))

    def set_default_due_date(self, identity: Optional[Identity], value: Any, unit: Any) -> Dict[str, Any]:
        identity = require_identity(identity)
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_DUE_DATE_VALUE:
            raise ValidationFailed(f"value must be a whole number between 1 and {MAX_DUE_DATE_VALUE}")
        if unit not in DUE_DATE_UNITS:
            raise ValidationFailed(f"unit must be one of {', '.join(DUE_DATE_UNITS)}")
        profile = self.db.upsert_user_profile(
            {
                "user_id": identity.user_id,
                "email": (identity.email or "").strip().lower() or None,
                "default_due_date_value": value,
                "default_due_date_unit": unit,
            }
        )
        return _from_profile(profile)

    def due_date_for(self, user_id: str) -> str:
        """YYYY-MM-DD due date for a project the user creates today."""
        setting = _from_profile(self.db.get_user_profile(user_id))
        today = self.clock()
        if isinstance(today, datetime):
            today = today.date()
        return offset_date(today, setting["value"], setting["unit"]).isoformat()
