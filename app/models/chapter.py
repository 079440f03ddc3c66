"""
Chapter — one generated narrative per (user_id, template_id, period_key).

Lifecycle:
  "pending" — written before the generation call; carries input_summary and
              metrics so a failed run is still inspectable.
  "ready"   — generated output passed validation; output_json populated.
  "failed"  — generation errored or output was rejected; `error` populated,
              output_json cleared.

Uniqueness: (user_id, template_id, period_key) — re-running upserts the row.
JSON payloads are stored as Text (stdlib json).
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.db.base import Base


class ChapterStatus(str, enum.Enum):
    pending = "pending"
    ready = "ready"
    failed = "failed"


class Chapter(Base):
    __tablename__ = "chapters"
    __table_args__ = (
        UniqueConstraint("user_id", "template_id", "period_key", name="uq_chapter_user_template_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    template_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_key: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ChapterStatus.pending.value, index=True,
        comment='"pending" | "ready" | "failed"',
    )
    input_summary: Mapped[str] = mapped_column(
        Text, nullable=False, default="{}",
        comment="JSON snapshot: period, counts, filter, noteworthy examples",
    )
    metrics: Mapped[str] = mapped_column(
        Text, nullable=False, default="{}",
        comment="JSON-encoded deterministic metrics bundle",
    )
    output_json: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="JSON-encoded validated generator output (ready only)",
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
