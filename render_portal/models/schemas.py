from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from render_portal.services.date_utils import to_date_ymd


class AnnotationPoint(BaseModel):
    x: float
    y: float
    id: str


class ItemPart(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    finish: str = Field(min_length=1)
    color: str = Field(min_length=1)
    texture: str = Field(min_length=1)
    files: List[str] = []
    notes: Optional[str] = None
    annotation_data: Optional[AnnotationPoint] = None


class ItemVersion(BaseModel):
    id: str
    versionNumber: int
    versionName: Optional[str] = None
    parts: List[ItemPart] = []
    created_at: Optional[str] = None


class ProjectItem(BaseModel):
    name: str = Field(min_length=1)
    hero_image: Optional[str] = None
    parts: List[ItemPart] = []
    versions: Optional[List[ItemVersion]] = None


def _normalize_due_date(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    ymd = to_date_ymd(value)
    if ymd is None:
        raise ValueError("due_date must be a YYYY-MM-DD date")
    return ymd


class ProjectCreate(BaseModel):
    title: str = Field(min_length=1)
    retailer: str = Field(min_length=1)
    due_date: Optional[str] = None
    items: List[ProjectItem] = Field(min_length=1)

    @field_validator("due_date", mode="before")
    @classmethod
    def _due_date(cls, value: Any) -> Optional[str]:
        return _normalize_due_date(value)


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    retailer: Optional[str] = Field(default=None, min_length=1)
    due_date: Optional[str] = None
    items: Optional[List[ProjectItem]] = Field(default=None, min_length=1)

    @field_validator("due_date", mode="before")
    @classmethod
    def _due_date(cls, value: Any) -> Optional[str]:
        return _normalize_due_date(value)


class NotificationResult(BaseModel):
    successful: List[str]
    failed: List[Dict[str, str]]
