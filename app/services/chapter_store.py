"""
Chapter lifecycle store.

Rules:
- One row per (user_id, template_id, period_key); writes are upserts.
- "failed" always carries an error; "pending" and "ready" clear it.
- Only "ready" keeps output_json.
- db.commit() happens here, once per write.

Public API
----------
get_chapter(db, user_id, template_id, period_key)        -> Chapter | None
get_chapter_by_id(db, user_id, chapter_id)               -> Chapter | None
upsert_chapter(db, user_id, template_id, period, ...)    -> Chapter
list_chapters(db, user_id, template_id, status, ...)     -> tuple[int, list[Chapter]]
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ChapterPersistenceError
from app.models.chapter import Chapter, ChapterStatus
from app.services.periods import Period

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Generation failed"


def _jdump(value: Optional[dict]) -> Optional[str]:
    return json.dumps(value, ensure_ascii=False) if value is not None else None


def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_chapter(db: Session, user_id: str, template_id: int, period_key: str) -> Optional[Chapter]:
    return (
        db.query(Chapter)
        .filter(
            Chapter.user_id == user_id,
            Chapter.template_id == template_id,
            Chapter.period_key == period_key,
        )
        .first()
    )


def get_chapter_by_id(db: Session, user_id: str, chapter_id: int) -> Optional[Chapter]:
    return (
        db.query(Chapter)
        .filter(Chapter.id == chapter_id, Chapter.user_id == user_id)
        .first()
    )


def list_chapters(
    db: Session,
    user_id: str,
    template_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[int, list[Chapter]]:
    """Return (total_count, page) ordered by period_start descending."""
    q = db.query(Chapter).filter(Chapter.user_id == user_id)
    if template_id is not None:
        q = q.filter(Chapter.template_id == template_id)
    if status:
        q = q.filter(Chapter.status == _ev(status))
    total = q.count()
    items = (
        q.order_by(Chapter.period_start.desc(), Chapter.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _fields(
    period: Period,
    input_summary: Optional[dict],
    metrics: Optional[dict],
    output: Optional[dict],
    status: str,
    error: Optional[str],
) -> dict:
    fields = {
        "period_start": period.start,
        "period_end": period.end,
        "status": status,
        "output_json": _jdump(output) if status == ChapterStatus.ready.value else None,
        "error": (error or DEFAULT_FAILURE_MESSAGE) if status == ChapterStatus.failed.value else None,
    }
    # None keeps the stored snapshot.
    if input_summary is not None:
        fields["input_summary"] = _jdump(input_summary)
    if metrics is not None:
        fields["metrics"] = _jdump(metrics)
    return fields


def _apply(row: Chapter, fields: dict) -> None:
    for key, value in fields.items():
        setattr(row, key, value)


def upsert_chapter(
    db: Session,
    user_id: str,
    template_id: int,
    period: Period,
    input_summary: Optional[dict] = None,
    metrics: Optional[dict] = None,
    output: Optional[dict] = None,
    status: str = ChapterStatus.pending.value,
    error: Optional[str] = None,
) -> Chapter:
    """
    Insert or update the chapter for (user_id, template_id, period.key).
    A concurrent insert of the same key is retried as an update.

    Raises:
        ChapterPersistenceError: the row could not be written
    """
    status = _ev(status)
    fields = _fields(period, input_summary, metrics, output, status, error)

    try:
        existing = get_chapter(db, user_id, template_id, period.key)
        if existing is not None:
            _apply(existing, fields)
            db.commit()
            db.refresh(existing)
            return existing

        row = Chapter(user_id=user_id, template_id=template_id, period_key=period.key)
        _apply(row, fields)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Chapter %s/%s/%s inserted concurrently; updating", user_id, template_id, period.key)
            existing = get_chapter(db, user_id, template_id, period.key)
            if existing is None:
                raise
            _apply(existing, fields)
            db.commit()
            db.refresh(existing)
            return existing
        db.refresh(row)
        return row
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to write chapter %s/%s/%s: %s", user_id, template_id, period.key, e)
        raise ChapterPersistenceError(f"Failed to write chapter: {e}", period_key=period.key) from e
