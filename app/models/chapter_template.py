"""
ChapterTemplate — a user's report configuration.

One template yields at most one Chapter per period_key. The batch job walks
enabled templates; `manual` cadence templates are only run on request.

filter_json: JSON-encoded filter groups (see app/services/filters.py).
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, Boolean, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.db.base import Base


class TemplateKind(str, enum.Enum):
    reflection = "reflection"
    report = "report"


class Cadence(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"
    manual = "manual"


class DetailLevel(str, enum.Enum):
    short = "short"
    medium = "medium"
    deep = "deep"


class Tone(str, enum.Enum):
    gentle = "gentle"
    direct = "direct"
    playful = "playful"
    neutral = "neutral"


class ChapterTemplate(Base):
    __tablename__ = "chapter_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    kind: Mapped[str] = mapped_column(
        Enum(TemplateKind, name="template_kind_enum"),
        nullable=False,
        default=TemplateKind.reflection,
    )
    cadence: Mapped[str] = mapped_column(
        Enum(Cadence, name="template_cadence_enum"),
        nullable=False,
        default=Cadence.weekly,
    )
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    filter_json: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="JSON array of filter groups",
    )
    filter_group_logic: Mapped[str] = mapped_column(String(8), nullable=False, default="or")
    detail_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    tone: Mapped[str | None] = mapped_column(String(16), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
