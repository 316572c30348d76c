import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def record_activity(
    db: Any,
    *,
    project_id: str,
    user_id: str,
    action: str,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Append a project log entry. Never blocks the business flow on failure."""
    payload = {
        "project_id": project_id,
        "user_id": user_id,
        "action": action,
        "details": details or {},
    }
    try:
        return db.append_project_log(payload)
    except Exception:
        logger.warning("failed to record %s for project %s", action, project_id, exc_info=True)
        return None
