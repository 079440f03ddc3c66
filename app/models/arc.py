from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Arc(Base):
    __tablename__ = "arcs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    narrative: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="Long-form description of the arc",
    )
