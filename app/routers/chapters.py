"""
Chapters router.

GET  /chapters/run      — Scheduled batch (all enabled, non-manual templates)
POST /chapters/run      — Manual batch, scoped to the caller
GET  /chapters          — Caller's chapters (paginated)
GET  /chapters/{id}     — Single chapter
"""
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.errors import ChapterNotFoundError
from app.db.base import get_db
from app.models.chapter import Chapter, ChapterStatus
from app.routers.deps import get_caller_id, get_generation_client
from app.schemas.chapters import (
    ChapterListResponse,
    ChapterResponse,
    RunChaptersRequest,
    RunChaptersResponse,
)
from app.schemas.common import ErrorResponse
from app.services.chapter_pipeline import MODE_MANUAL, MODE_SCHEDULED, run_chapters
from app.services.chapter_store import get_chapter_by_id, list_chapters
from app.services.generation_client import GenerationClient

router = APIRouter(prefix="/chapters", tags=["chapters"])


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def _jload(text: Optional[str]) -> Optional[dict]:
    if not text:
        return None
    try:
        result = json.loads(text)
        return result if isinstance(result, dict) else None
    except (ValueError, TypeError):
        return None


def _iso(value) -> str:
    return value.isoformat() if value else ""


def _chapter_to_response(chapter: Chapter) -> ChapterResponse:
    return ChapterResponse(
        id=chapter.id,
        template_id=chapter.template_id,
        period_key=chapter.period_key,
        period_start=_iso(chapter.period_start),
        period_end=_iso(chapter.period_end),
        status=chapter.status,
        input_summary=_jload(chapter.input_summary) or {},
        metrics=_jload(chapter.metrics) or {},
        output=_jload(chapter.output_json),
        error=chapter.error,
        created_at=_iso(chapter.created_at),
        updated_at=_iso(chapter.updated_at),
    )


# ---------------------------------------------------------------------------
# Batch triggers
# ---------------------------------------------------------------------------

@router.get(
    "/run",
    response_model=RunChaptersResponse,
    summary="Scheduled run over all enabled templates",
)
def run_scheduled(
    db: Session = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
):
    """
    Generate the most recently completed period for every enabled,
    non-manual template across users. Templates whose chapter is already
    `ready` are skipped without calling the generator.
    """
    summary = run_chapters(db, mode=MODE_SCHEDULED, client=client)
    return RunChaptersResponse.model_validate(summary.to_dict())


@router.post(
    "/run",
    response_model=RunChaptersResponse,
    summary="Manual run for the caller's templates",
    responses={
        401: {"model": ErrorResponse, "description": "No caller identity."},
        404: {"model": ErrorResponse, "description": "Template not found for caller."},
    },
)
def run_manual(
    payload: Optional[RunChaptersRequest] = None,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
):
    """
    Run the caller's templates.

    - **template_id** — restrict to one template.
    - **force** — regenerate chapters that are already `ready`.
    - **period_offset** — go N complete periods back.
    - **start / end** — explicit custom range (end exclusive), overrides the cadence.

    Each template's outcome is reported independently; one failure never
    aborts the others.
    """
    payload = payload or RunChaptersRequest()
    summary = run_chapters(
        db,
        mode=MODE_MANUAL,
        caller_id=caller_id,
        template_id=payload.template_id,
        limit=payload.limit,
        force=payload.force,
        period_offset=payload.period_offset,
        start_date=payload.start,
        end_date=payload.end,
        client=client,
    )
    return RunChaptersResponse.model_validate(summary.to_dict())


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=ChapterListResponse,
    summary="List the caller's chapters (newest period first)",
    responses={401: {"model": ErrorResponse}},
)
def get_chapters(
    template_id: Optional[int] = Query(default=None, description="Only chapters of this template."),
    status: Optional[ChapterStatus] = Query(default=None, description="pending | ready | failed"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    total, items = list_chapters(
        db, caller_id, template_id=template_id, status=status, limit=limit, offset=offset,
    )
    return ChapterListResponse(total=total, items=[_chapter_to_response(c) for c in items])


@router.get(
    "/{chapter_id}",
    response_model=ChapterResponse,
    summary="Retrieve one of the caller's chapters",
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse, "description": "Chapter not found."},
    },
)
def get_chapter(
    chapter_id: int,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    chapter = get_chapter_by_id(db, caller_id, chapter_id)
    if chapter is None:
        raise ChapterNotFoundError(chapter_id)
    return _chapter_to_response(chapter)
