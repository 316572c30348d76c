from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from render_portal.core.auth import Identity, require_identity
from render_portal.core.errors import ValidationFailed
from render_portal.core.permissions import Operation
from render_portal.services.access import AccessGate

logger = logging.getLogger(__name__)


class BoardService:
    """One whiteboard snapshot per project. No versioning; last write wins."""

    def __init__(self, db: Any) -> None:
        self.db = db
        self.gate = AccessGate(db)

    def load(self, identity: Optional[Identity], project_id: str) -> Dict[str, Any]:
        self.gate.require(identity, project_id, Operation.READ)
        board = self.db.get_board(project_id)
        if board is None:
            board = self.db.upsert_board(project_id, {})
        return board

    def save(self, identity: Optional[Identity], project_id: str, snapshot: Any) -> Dict[str, Any]:
        identity = require_identity(identity)
        self.gate.require(identity, project_id, Operation.EDIT)
        if not isinstance(snapshot, dict):
            raise ValidationFailed("board_snapshot must be a JSON object")
        board = self.db.upsert_board(project_id, snapshot)
        logger.debug("board for project %s saved by %s", project_id, identity.user_id)
        return board
