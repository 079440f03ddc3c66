"""
Chapter request / response schemas.

GET  /chapters/run        → RunChaptersResponse (scheduled)
POST /chapters/run        → RunChaptersRequest  → RunChaptersResponse (manual)
GET  /chapters            → ChapterListResponse
GET  /chapters/{id}       → ChapterResponse
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RunChaptersRequest(BaseModel):
    """Manual run options. camelCase names are accepted for older clients."""
    model_config = ConfigDict(populate_by_name=True)

    template_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("template_id", "templateId"),
        description="Run a single template. Omit to run all of the caller's enabled templates.",
    )
    limit: int = Field(default=50, description="Maximum templates processed (clamped to 1–500).")
    force: bool = Field(default=False, description="Regenerate even if the chapter is already ready.")
    period_offset: int = Field(
        default=0,
        validation_alias=AliasChoices("period_offset", "periodOffset"),
        description="Complete periods back from the most recent one (clamped to 0–260).",
    )
    start: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("start", "periodStart"),
        description="Custom range start (ISO date). Needs `end` too.",
        examples=["2026-10-01"],
    )
    end: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("end", "periodEnd"),
        description="Custom range end, exclusive (ISO date). At most tomorrow.",
        examples=["2026-10-15"],
    )


class TemplateOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    template_id: int
    user_id: str
    period_key: Optional[str] = None
    ok: bool
    action: str = Field(description='"generated" | "skipped" | "failed"')
    reason: Optional[str] = Field(default=None, description='e.g. "already_ready", "invalid_period"')
    error: Optional[str] = None


class RunChaptersResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    mode: str = Field(description='"scheduled" or "manual".')
    processed: int
    results: list[TemplateOutcomeResponse]


class ChapterResponse(BaseModel):
    """A chapter row with its JSON columns decoded."""
    id: int
    template_id: int
    period_key: str
    period_start: str
    period_end: str
    status: str = Field(description='"pending" | "ready" | "failed"')
    input_summary: dict[str, Any] = Field(default_factory=dict)
    metrics: dict[str, Any] = Field(default_factory=dict)
    output: Optional[dict[str, Any]] = Field(
        default=None, description="Validated generator output; present only when ready.",
    )
    error: Optional[str] = None
    created_at: str
    updated_at: str


class ChapterListResponse(BaseModel):
    """Paginated list of chapters, newest period first."""
    total: int
    items: list[ChapterResponse]
