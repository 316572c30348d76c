"""
Permission levels and the operations each level allows.
"""

from enum import Enum
from typing import Dict, Optional

PERMISSION_LEVELS = ("view", "edit", "admin")

# "none" is never stored; it is what resolution yields without access.
LEVEL_RANK: Dict[str, int] = {"none": 0, "view": 1, "edit": 2, "admin": 3}


class Operation(str, Enum):
    READ = "read"
    EDIT = "edit"
    MANAGE = "manage"
    DELETE = "delete"


REQUIRED_LEVEL: Dict[Operation, str] = {
    Operation.READ: "view",
    Operation.EDIT: "edit",
    Operation.MANAGE: "admin",
    # Owner-only; admin rank is necessary but not sufficient.
    Operation.DELETE: "admin",
}


def is_valid_level(level: Optional[str]) -> bool:
    return level in PERMISSION_LEVELS


def level_allows(level: str, operation: Operation) -> bool:
    return LEVEL_RANK.get(level, 0) >= LEVEL_RANK[REQUIRED_LEVEL[operation]]
