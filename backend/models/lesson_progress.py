from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class LessonProgress(Base, TimestampMixin):
    __tablename__ = "lesson_progress"

    lesson_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="locked"
    )  # locked, available, in_progress, completed
    radicals_done: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    characters_done: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
