from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from render_portal.api.v1.errors import as_http_error
from render_portal.core.auth import Identity, get_identity
from render_portal.db.registry import get_db
from render_portal.services.boards import BoardService

router = APIRouter(prefix="/projects", tags=["Boards"])


class BoardSaveIn(BaseModel):
    board_snapshot: Dict[str, Any]


def _boards() -> BoardService:
    return BoardService(get_db())


@router.get("/{project_id}/board")
def load_board(project_id: str, identity: Identity = Depends(get_identity)):
    try:
        return _boards().load(identity, project_id)
    except Exception as exc:
        raise as_http_error(exc)


@router.put("/{project_id}/board")
def save_board(project_id: str, payload: BoardSaveIn, identity: Identity = Depends(get_identity)):
    try:
        return _boards().save(identity, project_id, payload.board_snapshot)
    except Exception as exc:
        raise as_http_error(exc)
