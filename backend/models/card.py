"""SRS card model: one schedulable direction of one content item."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base, TimestampMixin


class Card(Base, TimestampMixin):
    """A flashcard with FSRS scheduling state for an (item, card type) pair."""

    __tablename__ = "cards"
    __table_args__ = (UniqueConstraint("item_type", "item_id", "card_type"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)  # radical, character
    card_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="recognition"
    )  # recognition, recall
    state: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, index=True
    )  # 0=New, 1=Learning, 2=Review, 3=Relearning
    due: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    stability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    elapsed_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scheduled_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    learning_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lapses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_review: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="card")  # type: ignore[name-defined] # noqa: F821
