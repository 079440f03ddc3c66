"""
Chapter template schemas.

POST /templates   → TemplateCreate → TemplateResponse
GET  /templates   → list[TemplateResponse]
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.chapter_template import Cadence, DetailLevel, TemplateKind, Tone
from app.services.filters import GroupLogic


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=256, examples=["Weekly reflection"])
    kind: TemplateKind = TemplateKind.reflection
    cadence: Cadence = Cadence.weekly
    timezone: str = Field(default="UTC", max_length=64, examples=["America/New_York"])
    filter_groups: list[dict[str, Any]] = Field(
        default_factory=list,
        description='Filter groups, e.g. [{"logic": "and", "conditions": [{"field": "tags", "operator": "contains", "value": "work"}]}]',
    )
    filter_group_logic: GroupLogic = GroupLogic.or_
    detail_level: Optional[DetailLevel] = None
    tone: Optional[Tone] = None
    enabled: bool = True


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    kind: TemplateKind
    cadence: Cadence
    timezone: str
    filter_groups: list[dict[str, Any]] = Field(default_factory=list)
    filter_group_logic: str
    detail_level: Optional[str] = None
    tone: Optional[str] = None
    enabled: bool
