"""
Chapter templates router.

POST /templates   — Create a template for the caller
GET  /templates   — List the caller's templates
"""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models.chapter_template import ChapterTemplate
from app.routers.deps import get_caller_id
from app.schemas.common import ErrorResponse
from app.schemas.templates import TemplateCreate, TemplateResponse
from app.services.filters import parse_filter_groups
from app.services.periods import resolve_zone

router = APIRouter(prefix="/templates", tags=["templates"])


def _template_to_response(t: ChapterTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=t.id,
        name=t.name,
        kind=t.kind,
        cadence=t.cadence,
        timezone=t.timezone,
        filter_groups=[g.to_dict() for g in parse_filter_groups(t.filter_json)],
        filter_group_logic=t.filter_group_logic,
        detail_level=t.detail_level,
        tone=t.tone,
        enabled=t.enabled,
    )


@router.post(
    "",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a chapter template",
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_template(
    payload: TemplateCreate,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """
    Unknown time zones are stored as the service default. Filter conditions
    naming an unknown field or operator are dropped.
    """
    _, tz_name = resolve_zone(payload.timezone)
    groups = parse_filter_groups(payload.filter_groups)
    template = ChapterTemplate(
        user_id=caller_id,
        name=payload.name,
        kind=payload.kind,
        cadence=payload.cadence,
        timezone=tz_name,
        filter_json=json.dumps([g.to_dict() for g in groups], ensure_ascii=False),
        filter_group_logic=payload.filter_group_logic.value,
        detail_level=payload.detail_level.value if payload.detail_level else None,
        tone=payload.tone.value if payload.tone else None,
        enabled=payload.enabled,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return _template_to_response(template)


@router.get(
    "",
    response_model=list[TemplateResponse],
    summary="List the caller's templates",
    responses={401: {"model": ErrorResponse}},
)
def list_templates(
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    templates = (
        db.query(ChapterTemplate)
        .filter(ChapterTemplate.user_id == caller_id)
        .order_by(ChapterTemplate.id)
        .all()
    )
    return [_template_to_response(t) for t in templates]
