"""
Activity — atomic task record owned by a user.

Read-only for the Chapters engine: the app's sync layer writes these rows,
the pipeline only loads them (see app/services/domain_loader.py).

tags: JSON-encoded list of strings stored as Text.
Any of the four timestamps may be NULL independently.
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.db.base import Base


class ActivityStatus(str, enum.Enum):
    planned = "planned"
    in_progress = "in_progress"
    done = "done"
    skipped = "skipped"
    cancelled = "cancelled"


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    goal_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    arc_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    status: Mapped[str] = mapped_column(
        Enum(ActivityStatus, name="activity_status_enum"),
        nullable=False,
        default=ActivityStatus.planned,
    )
    tags: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="JSON array of tag strings",
    )
    effort_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
